from grounded_qa.agent.history import ConversationHistory
from grounded_qa.prompting.assembler import (
    DEFAULT_PERSONA,
    NO_CONTEXT_PLACEHOLDER,
    PromptAssembler,
)


def test_build_with_context_uses_literal_template() -> None:
    messages = PromptAssembler().build("You are terse.", "Xylar has no moons.", "Moons?", None)

    assert [m.role for m in messages] == ["system", "user"]
    assert messages[0].content == "You are terse."
    assert messages[1].content == (
        "Context from the document:\n"
        "---\n"
        "Xylar has no moons.\n"
        "---\n"
        "User Question: Moons?"
    )


def test_empty_context_uses_placeholder() -> None:
    messages = PromptAssembler().build(DEFAULT_PERSONA, "", "What is the capital of France?", None)

    assert messages[0].role == "system"
    assert NO_CONTEXT_PLACEHOLDER in messages[-1].content
    assert "---\n\n---" not in messages[-1].content


def test_history_is_ignored_unless_enabled() -> None:
    history = ConversationHistory(max_turns=5)
    history.append_turn("first question", "first answer")

    messages = PromptAssembler().build("persona", "ctx", "second", history)

    assert len(messages) == 2


def test_history_inserted_oldest_first_between_system_and_question() -> None:
    history = ConversationHistory(max_turns=5)
    history.append_turn("q1", "a1")
    history.append_turn("q2", "a2")

    messages = PromptAssembler(include_history=True).build("persona", "ctx", "q3", history)

    assert [m.role for m in messages] == ["system", "user", "assistant", "user", "assistant", "user"]
    assert [m.content for m in messages[1:5]] == ["q1", "a1", "q2", "a2"]
    assert messages[-1].content.endswith("User Question: q3")
    assert sum(1 for m in messages if m.role == "system") == 1
