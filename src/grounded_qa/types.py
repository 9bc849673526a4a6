"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

Role = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class Document:
    """A loaded source document. Replaced wholesale, never mutated."""

    doc_id: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(slots=True, frozen=True)
class Chunk:
    """One sentence of a document, addressed by offset and length."""

    chunk_id: str
    doc_id: str
    index: int
    text: str
    offset: int
    length: int


@dataclass(slots=True, frozen=True)
class RetrievalResult:
    """Chunks selected for a query, in document order."""

    query: str
    chunks: tuple[Chunk, ...] = ()

    def __len__(self) -> int:
        return len(self.chunks)

    def __bool__(self) -> bool:
        return bool(self.chunks)

    @property
    def context(self) -> str:
        if not self.chunks:
            return ""
        return ". ".join(chunk.text for chunk in self.chunks) + "."


@dataclass(slots=True, frozen=True)
class ToolInvocationRequest:
    """A tool call requested by the completion provider."""

    call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Serialized outcome of one tool invocation."""

    call_id: str
    name: str
    content: str
    is_error: bool = False


@dataclass(slots=True, frozen=True)
class Message:
    """A single chat message exchanged with the completion provider."""

    role: Role
    content: str
    tool_calls: tuple[ToolInvocationRequest, ...] = ()
    tool_call_id: str | None = None


@dataclass(slots=True, frozen=True)
class FinalAnswer:
    text: str


@dataclass(slots=True, frozen=True)
class ToolCallRequested:
    calls: tuple[ToolInvocationRequest, ...]


@dataclass(slots=True, frozen=True)
class Cancelled:
    reason: str = "cancelled by caller"


CompletionOutcome = Union[FinalAnswer, ToolCallRequested]


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class TurnResult:
    """Caller-visible outcome of one question/answer turn.

    `status` is `answered`, `failed` or `cancelled`. Failed turns carry an
    `error_kind` so they can be told apart from a normal final answer.
    """

    answer: str
    status: Literal["answered", "failed", "cancelled"] = "answered"
    error_kind: str | None = None
    states: list[str] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    context: str = ""
    trace_id: str | None = None
    latency_ms: float = 0.0
    groundedness: float = 0.0
    latency_target_met: bool = False
    groundedness_target_met: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "answered"
