"""Builds the message sequence sent to the completion provider."""

from __future__ import annotations

from typing import TYPE_CHECKING

from grounded_qa.types import Message

if TYPE_CHECKING:
    from grounded_qa.agent.history import ConversationHistory

NO_CONTEXT_PLACEHOLDER = "No relevant context found in the document."

DEFAULT_PERSONA = """
You are a careful document assistant.

Rules:
1) Answer only from the context supplied with the question.
2) If the context does not contain the answer, say explicitly that the information is not available in the provided document.
3) Never invent facts that are not in the context.
4) Use the `calculator` tool for arithmetic instead of computing in your head.
5) Keep answers short and cite the sentences you relied on.
""".strip()

_USER_TEMPLATE = """Context from the document:
---
{context}
---
User Question: {question}"""


class PromptAssembler:
    """Assembles persona, optional history, context and question.

    The first message is always the `system` persona. When `include_history`
    is set, prior messages are inserted oldest first between the persona and
    the new question.
    """

    def __init__(self, *, include_history: bool = False) -> None:
        self.include_history = include_history

    def build(
        self,
        persona: str,
        context: str,
        question: str,
        history: ConversationHistory | None = None,
    ) -> list[Message]:
        messages = [Message(role="system", content=persona)]
        if self.include_history and history is not None:
            messages.extend(history.messages())
        messages.append(Message(role="user", content=render_user_prompt(context, question)))
        return messages


def render_user_prompt(context: str, question: str) -> str:
    return _USER_TEMPLATE.format(
        context=context if context.strip() else NO_CONTEXT_PLACEHOLDER,
        question=question,
    )
