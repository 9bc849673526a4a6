import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from pydantic import BaseModel

from grounded_qa.agent.completion import (
    NOT_AVAILABLE_ANSWER,
    EnvCredentialProvider,
    LangChainCompletionProvider,
    OfflineCompletionProvider,
    create_completion_provider,
    to_langchain_messages,
)
from grounded_qa.agent.registry import ToolSpec
from grounded_qa.config import ProviderConfig
from grounded_qa.errors import ConfigurationError, ProviderError
from grounded_qa.prompting.assembler import PromptAssembler
from grounded_qa.types import FinalAnswer, Message, ToolCallRequested, ToolInvocationRequest


class ExpressionInput(BaseModel):
    expression: str


CALCULATOR = ToolSpec(
    name="calculator",
    description="arithmetic",
    args_schema=ExpressionInput,
    handler=lambda data: data.expression,
)


class FakeChatModel:
    def __init__(self, responses: list[object]) -> None:
        self.responses = list(responses)
        self.bound_tools: list[object] | None = None
        self.received: list[list[object]] = []

    def bind_tools(self, tools: list[object]) -> "FakeChatModel":
        self.bound_tools = tools
        return self

    def invoke(self, messages: list[object]) -> object:
        self.received.append(messages)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class StaticCredentials:
    def __init__(self, key: str | None) -> None:
        self.key = key

    def api_key(self) -> str | None:
        return self.key


def _prompt(context: str, question: str) -> list[Message]:
    return PromptAssembler().build("persona", context, question, None)


def test_langchain_provider_maps_text_to_final_answer() -> None:
    llm = FakeChatModel([AIMessage(content="Xylar has no moons.")])

    outcome = LangChainCompletionProvider(llm).complete(_prompt("ctx", "q"))

    assert outcome == FinalAnswer(text="Xylar has no moons.")
    assert llm.bound_tools is None
    assert isinstance(llm.received[0][0], SystemMessage)
    assert isinstance(llm.received[0][1], HumanMessage)


def test_langchain_provider_maps_tool_calls_and_fills_missing_ids() -> None:
    llm = FakeChatModel(
        [
            AIMessage(
                content="",
                tool_calls=[
                    {"name": "calculator", "args": {"expression": "1 + 1"}, "id": "call_1"},
                    {"name": "calculator", "args": {"expression": "2 + 2"}, "id": None},
                ],
            )
        ]
    )

    outcome = LangChainCompletionProvider(llm).complete(_prompt("", "q"), [CALCULATOR])

    assert isinstance(outcome, ToolCallRequested)
    assert outcome.calls[0] == ToolInvocationRequest(
        call_id="call_1", name="calculator", arguments={"expression": "1 + 1"}
    )
    assert outcome.calls[1].call_id.startswith("call_")
    assert [tool.name for tool in llm.bound_tools or []] == ["calculator"]


def test_langchain_provider_wraps_backend_errors() -> None:
    llm = FakeChatModel([TimeoutError("read timed out")])

    with pytest.raises(ProviderError, match="read timed out"):
        LangChainCompletionProvider(llm).complete(_prompt("ctx", "q"))


def test_langchain_provider_joins_list_content() -> None:
    llm = FakeChatModel([AIMessage(content=[{"type": "text", "text": "Part one."}, "Part two."])])

    outcome = LangChainCompletionProvider(llm).complete(_prompt("ctx", "q"))

    assert outcome == FinalAnswer(text="Part one. Part two.")


def test_tool_round_messages_convert_with_correlation_ids() -> None:
    call = ToolInvocationRequest(call_id="c-9", name="calculator", arguments={"expression": "1"})
    converted = to_langchain_messages(
        [
            Message(role="assistant", content="", tool_calls=(call,)),
            Message(role="tool", content="1", tool_call_id="c-9"),
        ]
    )

    assert isinstance(converted[0], AIMessage)
    assert converted[0].tool_calls[0]["id"] == "c-9"
    assert isinstance(converted[1], ToolMessage)
    assert converted[1].tool_call_id == "c-9"


def test_offline_provider_requests_calculator_for_arithmetic() -> None:
    outcome = OfflineCompletionProvider().complete(
        _prompt("", "What is 25 + 75 / 3?"), [CALCULATOR]
    )

    assert isinstance(outcome, ToolCallRequested)
    [call] = outcome.calls
    assert call.name == "calculator"
    assert call.arguments == {"expression": "25 + 75 / 3"}


def test_offline_provider_reports_tool_result() -> None:
    messages = _prompt("", "What is 25 + 75 / 3?") + [
        Message(
            role="assistant",
            content="",
            tool_calls=(ToolInvocationRequest(call_id="c1", name="calculator"),),
        ),
        Message(role="tool", content="50.0", tool_call_id="c1"),
    ]

    outcome = OfflineCompletionProvider().complete(messages, [CALCULATOR])

    assert isinstance(outcome, FinalAnswer)
    assert "50.0" in outcome.text


def test_offline_provider_discloses_missing_information() -> None:
    provider = OfflineCompletionProvider()

    empty = provider.complete(_prompt("", "What is the capital of France?"))
    unrelated = provider.complete(
        _prompt("Xylar has a thin atmosphere made mostly of neon.", "What is the capital of France?")
    )

    assert empty == FinalAnswer(text=NOT_AVAILABLE_ANSWER)
    assert unrelated == FinalAnswer(text=NOT_AVAILABLE_ANSWER)


def test_offline_provider_quotes_best_matching_sentence() -> None:
    context = (
        "Planet Xylar orbits a quiet orange star. "
        "Survey records make no mention of Xylar having any moons."
    )

    outcome = OfflineCompletionProvider().complete(_prompt(context, "Does Xylar have any moons?"))

    assert isinstance(outcome, FinalAnswer)
    assert "no mention of Xylar having any moons" in outcome.text
    assert "orange star" not in outcome.text


def test_create_provider_without_key_raises_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        create_completion_provider(ProviderConfig(), StaticCredentials(None))


def test_create_provider_offline_and_openai() -> None:
    offline = create_completion_provider(ProviderConfig(provider="offline"))
    assert isinstance(offline, OfflineCompletionProvider)

    provider = create_completion_provider(
        ProviderConfig(model="gpt-4o-mini", request_timeout_seconds=5.0),
        StaticCredentials("sk-test"),
    )
    assert isinstance(provider, LangChainCompletionProvider)
    assert provider.llm.max_retries == 0


def test_env_credential_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GROUNDED_QA_TEST_KEY", "  ")
    assert EnvCredentialProvider("GROUNDED_QA_TEST_KEY").api_key() is None

    monkeypatch.setenv("GROUNDED_QA_TEST_KEY", "secret")
    assert EnvCredentialProvider("GROUNDED_QA_TEST_KEY").api_key() == "secret"
