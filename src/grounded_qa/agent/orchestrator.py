"""Answer orchestrator: retrieve, prompt, complete, dispatch tools, answer."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from grounded_qa.agent.completion import CompletionProvider
from grounded_qa.agent.history import ConversationHistory
from grounded_qa.agent.registry import ToolRegistry, ToolSpec
from grounded_qa.config import AgentConfig, RetrievalConfig
from grounded_qa.corpus.store import CorpusStore
from grounded_qa.errors import (
    ConfigurationError,
    DataUnavailableError,
    ProviderError,
    ToolArgumentError,
    UnknownToolError,
)
from grounded_qa.obs.tracing import Timer, TraceStore, estimate_token_count
from grounded_qa.prompting.assembler import PromptAssembler
from grounded_qa.retrieval.retriever import Retriever
from grounded_qa.types import (
    Cancelled,
    CompletionOutcome,
    Document,
    FinalAnswer,
    Message,
    ToolCallRequested,
    ToolInvocationRequest,
    ToolResult,
    ToolTrace,
    TurnResult,
)

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.05
ERROR_MARKER = "ERROR:"


class TurnState(str, Enum):
    START = "START"
    RETRIEVING = "RETRIEVING"
    PROMPTING = "PROMPTING"
    AWAITING_COMPLETION = "AWAITING_COMPLETION"
    TOOL_DISPATCH = "TOOL_DISPATCH"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class CancellationToken:
    """Caller-owned flag that aborts an in-flight completion round trip."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


@dataclass(slots=True)
class _Turn:
    question: str
    states: list[str] = field(default_factory=list)
    context: str = ""
    snippets: list[str] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    tool_traces: list[ToolTrace] = field(default_factory=list)
    input_tokens: int = 0

    def enter(self, state: TurnState) -> None:
        logger.debug("turn state -> %s", state.value)
        self.states.append(state.value)

    def finish(self, answer: str) -> TurnResult:
        self.enter(TurnState.DONE)
        return self._result(answer, "answered", None)

    def fail(self, error_kind: str, answer: str) -> TurnResult:
        self.enter(TurnState.FAILED)
        return self._result(answer, "failed", error_kind)

    def cancel(self, reason: str) -> TurnResult:
        self.enter(TurnState.CANCELLED)
        return self._result(f"Request cancelled: {reason}.", "cancelled", "cancelled")

    def _result(
        self,
        answer: str,
        status: Literal["answered", "failed", "cancelled"],
        error_kind: str | None,
    ) -> TurnResult:
        return TurnResult(
            answer=answer,
            status=status,
            error_kind=error_kind,
            states=list(self.states),
            tool_results=list(self.tool_results),
            context=self.context,
        )


class AnswerOrchestrator:
    """Drives one question through retrieval, prompting, completion and tools.

    `answer` never raises: configuration, data and provider problems come
    back as a `TurnResult` with `status="failed"` and an `error_kind`, and
    tool problems are fed back to the provider as `ERROR:` tool results.
    History lives in the `ConversationHistory` passed by the caller.
    """

    def __init__(
        self,
        *,
        corpus: CorpusStore,
        retriever: Retriever,
        tool_registry: ToolRegistry,
        provider: CompletionProvider | None,
        config: AgentConfig | None = None,
        retrieval_config: RetrievalConfig | None = None,
        assembler: PromptAssembler | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.corpus = corpus
        self.retriever = retriever
        self.tool_registry = tool_registry
        self.provider = provider
        self.config = config or AgentConfig()
        self.retrieval_config = retrieval_config or RetrievalConfig()
        self.assembler = assembler or PromptAssembler(
            include_history=self.config.include_history
        )
        self.trace_store = trace_store or TraceStore()

    def new_session(self) -> ConversationHistory:
        return ConversationHistory(max_turns=self.config.max_history_turns)

    def answer(
        self,
        question: str,
        session: ConversationHistory | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> TurnResult:
        """Run one full turn and record its trace."""

        turn = _Turn(question=question)
        with Timer() as timer:
            try:
                result = self._run(turn, session, timeout, cancel_token)
            except Exception as exc:
                logger.exception("Unexpected failure while answering %r", question)
                result = turn.fail("internal", f"Sorry, an internal error occurred: {exc}")

        snippets = turn.snippets + [
            r.content for r in turn.tool_results if not r.is_error
        ]
        record = self.trace_store.create_record(
            question=question,
            answer=result.answer,
            status=result.status,
            error_kind=result.error_kind,
            states=result.states,
            source_snippets=snippets,
            tool_traces=turn.tool_traces,
            input_tokens=turn.input_tokens,
            output_tokens=estimate_token_count(result.answer),
            latency_ms=timer.elapsed_ms,
            latency_target_ms=self.config.target_latency_seconds * 1000.0,
            groundedness_target=self.config.groundedness_target,
        )
        result.trace_id = record.trace_id
        result.latency_ms = record.latency_ms
        result.groundedness = record.groundedness
        result.latency_target_met = record.latency_target_met
        result.groundedness_target_met = record.groundedness_target_met
        logger.info(
            "turn finished status=%s error_kind=%s tools=%d latency_ms=%.1f",
            result.status,
            result.error_kind,
            len(result.tool_results),
            result.latency_ms,
        )
        return result

    def _run(
        self,
        turn: _Turn,
        session: ConversationHistory | None,
        timeout: float | None,
        cancel_token: CancellationToken | None,
    ) -> TurnResult:
        turn.enter(TurnState.START)
        try:
            provider, document = self._require_ready()
        except ConfigurationError as exc:
            return turn.fail("configuration", f"Configuration error: {exc}")
        except DataUnavailableError as exc:
            return turn.fail(
                "data_unavailable",
                f"Data unavailable: {exc} The question cannot be answered.",
            )

        turn.enter(TurnState.RETRIEVING)
        retrieval = self.retriever.retrieve(
            turn.question, document, self.retrieval_config.max_chunks
        )
        turn.context = retrieval.context
        turn.snippets = [chunk.text for chunk in retrieval.chunks]
        logger.debug("retrieved %d chunks", len(retrieval))

        turn.enter(TurnState.PROMPTING)
        messages = self.assembler.build(
            self.config.persona, retrieval.context, turn.question, session
        )
        tool_specs = self.tool_registry.schemas()

        rounds = 0
        while True:
            turn.enter(TurnState.AWAITING_COMPLETION)
            turn.input_tokens += sum(estimate_token_count(m.content) for m in messages)
            try:
                outcome = self._await_completion(
                    provider, messages, tool_specs, timeout, cancel_token
                )
            except Exception as exc:
                logger.warning("completion provider failed: %s", exc)
                return turn.fail(
                    "provider",
                    f"Sorry, I could not get an answer from the language model service: {exc}",
                )

            if isinstance(outcome, Cancelled):
                return turn.cancel(outcome.reason)
            if isinstance(outcome, FinalAnswer):
                break
            if rounds >= self.config.max_tool_rounds:
                logger.warning("tool round limit %d reached", self.config.max_tool_rounds)
                return turn.fail(
                    "tool_loop",
                    "Sorry, I could not finish answering: the model kept requesting "
                    f"tools after {rounds} rounds.",
                )

            rounds += 1
            turn.enter(TurnState.TOOL_DISPATCH)
            results = self._dispatch(outcome, turn)
            messages.append(Message(role="assistant", content="", tool_calls=outcome.calls))
            messages.extend(
                Message(role="tool", content=result.content, tool_call_id=result.call_id)
                for result in results
            )

        if self.config.include_history and session is not None:
            session.append_turn(turn.question, outcome.text)
            session.truncate(self.config.max_history_turns)
        return turn.finish(outcome.text)

    def _require_ready(self) -> tuple[CompletionProvider, Document]:
        if self.provider is None:
            raise ConfigurationError(
                "no completion provider is configured (missing API key)."
            )
        document = self.corpus.document
        if document is None:
            raise DataUnavailableError("no document has been loaded.")
        return self.provider, document

    def _await_completion(
        self,
        provider: CompletionProvider,
        messages: Sequence[Message],
        tool_specs: Sequence[ToolSpec],
        timeout: float | None,
        cancel_token: CancellationToken | None,
    ) -> CompletionOutcome | Cancelled:
        specs = list(tool_specs) or None
        if timeout is None and cancel_token is None:
            return provider.complete(list(messages), specs)
        if cancel_token is not None and cancel_token.cancelled:
            return Cancelled()

        # Abandoned round trips keep running on the worker thread; their
        # results are discarded.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="completion")
        future = executor.submit(provider.complete, list(messages), specs)
        executor.shutdown(wait=False)

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                future.cancel()
                return Cancelled()
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                future.cancel()
                raise ProviderError(f"completion timed out after {timeout:.2f}s")
            interval = (
                _POLL_INTERVAL_SECONDS
                if remaining is None
                else min(_POLL_INTERVAL_SECONDS, remaining)
            )
            done, _ = wait([future], timeout=interval)
            if done:
                return future.result()

    def _dispatch(self, request: ToolCallRequested, turn: _Turn) -> list[ToolResult]:
        seen_ids: set[str] = set()
        results: list[ToolResult] = []
        for call in request.calls:
            if call.call_id in seen_ids:
                result = _error_result(
                    call, ToolArgumentError(f"Duplicate tool call id: {call.call_id}")
                )
            else:
                seen_ids.add(call.call_id)
                result = self._invoke(call, turn)
            if result.is_error:
                logger.warning("tool %s failed: %s", call.name, result.content)
            results.append(result)
        turn.tool_results.extend(results)
        return results

    def _invoke(self, call: ToolInvocationRequest, turn: _Turn) -> ToolResult:
        with Timer() as timer:
            try:
                output = str(self.tool_registry.execute(call.name, call.arguments))
            except UnknownToolError as exc:
                available = ", ".join(spec.name for spec in self.tool_registry.schemas())
                return _error_result(call, exc, f"Available tools: {available or 'none'}.")
            except Exception as exc:
                return _error_result(call, exc)

        turn.tool_traces.append(
            ToolTrace(
                name=call.name,
                input_payload=dict(call.arguments),
                output_preview=output[:320],
                latency_ms=timer.elapsed_ms,
            )
        )
        return ToolResult(
            call_id=call.call_id,
            name=call.name,
            content=output,
            is_error=output.startswith(ERROR_MARKER),
        )


def _error_result(
    call: ToolInvocationRequest, exc: Exception, hint: str | None = None
) -> ToolResult:
    content = f"{ERROR_MARKER} {type(exc).__name__}: {exc}"
    if hint:
        content = f"{content} {hint}"
    return ToolResult(call_id=call.call_id, name=call.name, content=content, is_error=True)
