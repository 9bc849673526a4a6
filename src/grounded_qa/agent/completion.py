"""Completion provider adapters.

The orchestrator only sees `CompletionProvider.complete`, which returns an
explicit `FinalAnswer` or `ToolCallRequested`. Provider-specific response
shapes are translated here and nowhere else.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Protocol

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from grounded_qa.agent.registry import ToolSpec
from grounded_qa.config import ProviderConfig
from grounded_qa.errors import ConfigurationError, ProviderError
from grounded_qa.prompting.assembler import NO_CONTEXT_PLACEHOLDER
from grounded_qa.types import (
    CompletionOutcome,
    FinalAnswer,
    Message,
    ToolCallRequested,
    ToolInvocationRequest,
)

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    def api_key(self) -> str | None:
        """Return the API key, or None when it is not configured."""


class EnvCredentialProvider:
    """Reads an API key from an environment variable. Never prompts."""

    def __init__(self, variable: str = "OPENAI_API_KEY") -> None:
        self.variable = variable

    def api_key(self) -> str | None:
        value = os.getenv(self.variable, "").strip()
        return value or None


class CompletionProvider(ABC):
    """Contract between the orchestrator and a chat completion backend."""

    @abstractmethod
    def complete(
        self,
        messages: Sequence[Message],
        tool_specs: Sequence[ToolSpec] | None = None,
    ) -> CompletionOutcome:
        """Return exactly one of `FinalAnswer` or `ToolCallRequested`.

        Every requested tool call carries a correlation id. Backend failures
        are raised as `ProviderError`.
        """


class LangChainCompletionProvider(CompletionProvider):
    """Adapter over a LangChain chat model such as `ChatOpenAI`."""

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    def complete(
        self,
        messages: Sequence[Message],
        tool_specs: Sequence[ToolSpec] | None = None,
    ) -> CompletionOutcome:
        model = self.llm
        if tool_specs:
            model = self.llm.bind_tools([spec.as_langchain_tool() for spec in tool_specs])

        try:
            response = model.invoke(to_langchain_messages(messages))
        except Exception as exc:
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc

        if not isinstance(response, AIMessage):
            raise ProviderError(
                f"Unexpected completion response type: {type(response).__name__}"
            )
        if response.tool_calls:
            return ToolCallRequested(
                calls=tuple(
                    ToolInvocationRequest(
                        call_id=str(call.get("id") or f"call_{uuid.uuid4().hex[:12]}"),
                        name=str(call.get("name", "")),
                        arguments=dict(call.get("args") or {}),
                    )
                    for call in response.tool_calls
                )
            )
        return FinalAnswer(text=_message_text(response))


def to_langchain_messages(messages: Sequence[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "user":
            converted.append(HumanMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(
                AIMessage(
                    content=message.content,
                    tool_calls=[
                        {
                            "name": call.name,
                            "args": call.arguments,
                            "id": call.call_id,
                            "type": "tool_call",
                        }
                        for call in message.tool_calls
                    ],
                )
            )
        else:
            converted.append(
                ToolMessage(content=message.content, tool_call_id=message.tool_call_id or "")
            )
    return converted


def _message_text(message: AIMessage) -> str:
    content = message.content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return " ".join(parts).strip()
    return str(content).strip()


_CONTEXT_PATTERN = re.compile(
    r"Context from the document:\n---\n(?P<context>.*)\n---\nUser Question: (?P<question>.*)\Z",
    flags=re.DOTALL,
)
_EXPRESSION_PATTERN = re.compile(r"[\d.\s+\-*/()]+")
_WORD_PATTERN = re.compile(r"[a-z0-9']+")
_STOPWORDS = frozenset(
    """
    a about an and any are as at be by can could did do does for from has have
    how i if in is it its me my of on or tell that the their there these this
    to was were what when where which who why will with you your
    """.split()
)

NOT_AVAILABLE_ANSWER = (
    "The provided document does not contain information to answer that question."
)


class OfflineCompletionProvider(CompletionProvider):
    """Deterministic provider that answers without any network model.

    It keeps the same response contract as `LangChainCompletionProvider`:
    - arithmetic questions request the `calculator` tool when it is offered;
    - after a tool round the tool output is reported back;
    - otherwise the answer quotes the context sentences that share the most
      content words with the question, or states that the information is not
      available when none do.
    """

    def __init__(self) -> None:
        self._counter = 0

    def complete(
        self,
        messages: Sequence[Message],
        tool_specs: Sequence[ToolSpec] | None = None,
    ) -> CompletionOutcome:
        if not messages:
            raise ProviderError("No messages to complete")

        last = messages[-1]
        if last.role == "tool":
            return FinalAnswer(text=_report_tool_results(messages))

        user = next((m for m in reversed(messages) if m.role == "user"), None)
        if user is None:
            raise ProviderError("No user message to answer")
        match = _CONTEXT_PATTERN.search(user.content)
        context = match.group("context").strip() if match else ""
        question = match.group("question").strip() if match else user.content.strip()

        tool_names = {spec.name for spec in tool_specs or ()}
        expression = _find_expression(question)
        if expression is not None and "calculator" in tool_names:
            self._counter += 1
            return ToolCallRequested(
                calls=(
                    ToolInvocationRequest(
                        call_id=f"offline_call_{self._counter}",
                        name="calculator",
                        arguments={"expression": expression},
                    ),
                )
            )

        if not context or context == NO_CONTEXT_PLACEHOLDER:
            return FinalAnswer(text=NOT_AVAILABLE_ANSWER)
        sentences = _best_sentences(question, context)
        if not sentences:
            return FinalAnswer(text=NOT_AVAILABLE_ANSWER)
        return FinalAnswer(text="According to the document: " + " ".join(sentences))


def _report_tool_results(messages: Sequence[Message]) -> str:
    results: list[str] = []
    for message in reversed(messages):
        if message.role != "tool":
            break
        results.append(message.content)
    results.reverse()
    if any(result.startswith("ERROR:") for result in results):
        return "I could not complete the tool request: " + "; ".join(results)
    return "The result is " + ", ".join(results) + "."


def _find_expression(question: str) -> str | None:
    for candidate in _EXPRESSION_PATTERN.findall(question):
        candidate = candidate.strip()
        if re.search(r"\d", candidate) and re.search(r"\d\s*[-+*/]\s*[\d(.]", candidate):
            return candidate
    return None


def _content_words(text: str) -> set[str]:
    return {word for word in _WORD_PATTERN.findall(text.lower()) if word not in _STOPWORDS}


def _best_sentences(question: str, context: str) -> list[str]:
    question_words = _content_words(question)
    scored: list[tuple[int, str]] = []
    for sentence in context.split("."):
        sentence = sentence.strip()
        if not sentence:
            continue
        overlap = len(question_words & _content_words(sentence))
        if overlap:
            scored.append((overlap, sentence))
    if not scored:
        return []
    best = max(score for score, _ in scored)
    return [f"{sentence}." for score, sentence in scored if score == best]


def create_completion_provider(
    config: ProviderConfig,
    credentials: CredentialProvider | None = None,
) -> CompletionProvider:
    """Build the configured provider.

    Raises `ConfigurationError` when the credential variable is empty.
    """

    if config.provider == "offline":
        return OfflineCompletionProvider()

    credentials = credentials or EnvCredentialProvider(config.api_key_env)
    api_key = credentials.api_key()
    if not api_key:
        raise ConfigurationError(
            f"No API key found in {config.api_key_env}; completion provider is not configured"
        )

    from langchain_openai import ChatOpenAI

    logger.info("Using OpenAI completion provider model=%s", config.model)
    return LangChainCompletionProvider(
        ChatOpenAI(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_output_tokens,
            timeout=config.request_timeout_seconds,
            max_retries=0,
            api_key=api_key,
        )
    )
