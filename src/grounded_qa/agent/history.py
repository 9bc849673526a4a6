"""Per-session conversation history with bounded retention."""

from __future__ import annotations

from collections import deque

from grounded_qa.types import Message


class ConversationHistory:
    """Ordered question/answer turns owned by one session.

    The history keeps at most `max_turns` turns and drops the oldest first.
    It performs no internal locking; callers running turns concurrently must
    not share an instance without external synchronization.
    """

    def __init__(self, max_turns: int = 10) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self.max_turns = max_turns
        self._turns: deque[tuple[Message, Message]] = deque()

    def __len__(self) -> int:
        return len(self._turns)

    def append_turn(self, question: str, answer: str) -> None:
        self._turns.append(
            (Message(role="user", content=question), Message(role="assistant", content=answer))
        )
        self.truncate()

    def truncate(self, max_turns: int | None = None) -> None:
        limit = self.max_turns if max_turns is None else max_turns
        while len(self._turns) > limit:
            self._turns.popleft()

    def turns(self) -> list[tuple[Message, Message]]:
        return list(self._turns)

    def messages(self) -> list[Message]:
        return [message for turn in self._turns for message in turn]

    def clear(self) -> None:
        self._turns.clear()

