"""Turn tracing, cost accounting, and groundedness evaluation."""

from __future__ import annotations

import re
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone

from grounded_qa.types import ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

DISCLOSURE_PHRASES: tuple[str, ...] = (
    "does not contain",
    "not available",
    "no relevant context",
    "not mentioned",
    "cannot verify",
    "could not complete",
)


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    question: str
    answer: str
    status: str
    error_kind: str | None
    states: list[str]
    source_snippets: list[str]
    tool_traces: list[ToolTrace]
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float
    groundedness: float
    latency_target_met: bool
    groundedness_target_met: bool


@dataclass(slots=True)
class CostModel:
    """Simple token pricing model (USD per 1K tokens)."""

    input_per_1k: float = 0.00015
    output_per_1k: float = 0.0006

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1000.0) * self.input_per_1k + (
            output_tokens / 1000.0
        ) * self.output_per_1k


class GroundednessEvaluator:
    """Scores how much of an answer is supported by retrieved sentences.

    - Split the answer into sentences.
    - A sentence is grounded if some source snippet covers at least
      `min_overlap` of its tokens, or if it explicitly discloses that the
      information is absent (see `DISCLOSURE_PHRASES`).
    - Tool outputs count as source snippets.
    """

    def __init__(
        self,
        min_overlap: float = 0.35,
        disclosure_phrases: tuple[str, ...] = DISCLOSURE_PHRASES,
    ) -> None:
        self.min_overlap = min_overlap
        self.disclosure_phrases = disclosure_phrases

    def score(self, answer: str, source_snippets: list[str]) -> float:
        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(answer) if s.strip()]
        if not sentences:
            return 1.0

        source_token_sets = [set(self._normalize(source)) for source in source_snippets]
        grounded = 0
        for sentence in sentences:
            if self.is_disclosure(sentence):
                grounded += 1
                continue
            sentence_tokens = set(self._normalize(re.sub(r"\[[^\]]+\]", "", sentence)))
            if not sentence_tokens:
                grounded += 1
                continue
            if any(
                self._overlap(sentence_tokens, source_tokens) >= self.min_overlap
                for source_tokens in source_token_sets
            ):
                grounded += 1

        return grounded / len(sentences)

    def is_disclosure(self, sentence: str) -> bool:
        lowered = sentence.lower()
        return any(phrase in lowered for phrase in self.disclosure_phrases)

    @staticmethod
    def _normalize(text: str) -> list[str]:
        return [token.lower() for token in _TOKEN_PATTERN.findall(text)]

    @staticmethod
    def _overlap(a: set[str], b: set[str]) -> float:
        if not a or not b:
            return 0.0
        return len(a & b) / len(a)


class TraceStore:
    """Bounded in-memory trace storage, safe to share between request threads."""

    def __init__(
        self,
        *,
        max_records: int = 1000,
        cost_model: CostModel | None = None,
        groundedness_evaluator: GroundednessEvaluator | None = None,
    ) -> None:
        self._records: OrderedDict[str, TraceRecord] = OrderedDict()
        self._lock = threading.Lock()
        self._max_records = max_records
        self._cost_model = cost_model or CostModel()
        self._groundedness = groundedness_evaluator or GroundednessEvaluator()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def create_record(
        self,
        *,
        question: str,
        answer: str,
        status: str,
        error_kind: str | None,
        states: list[str],
        source_snippets: list[str],
        tool_traces: list[ToolTrace],
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        latency_target_ms: float | None = None,
        groundedness_target: float | None = None,
    ) -> TraceRecord:
        groundedness = (
            self._groundedness.score(answer, source_snippets) if status == "answered" else 0.0
        )
        latency_target_met = latency_target_ms is None or latency_ms <= latency_target_ms
        groundedness_target_met = status == "answered" and (
            groundedness_target is None or groundedness >= groundedness_target
        )
        record = TraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            question=question,
            answer=answer,
            status=status,
            error_kind=error_kind,
            states=states,
            source_snippets=source_snippets,
            tool_traces=tool_traces,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=self._cost_model.estimate_cost(input_tokens, output_tokens),
            latency_ms=latency_ms,
            groundedness=groundedness,
            latency_target_met=latency_target_met,
            groundedness_target_met=groundedness_target_met,
        )
        with self._lock:
            self._records[record.trace_id] = record
            while len(self._records) > self._max_records:
                self._records.popitem(last=False)
        return record

    def get(self, trace_id: str) -> TraceRecord:
        with self._lock:
            record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        with self._lock:
            records = list(self._records.values())
        return records[-limit:] if limit > 0 else []

    def summary(self) -> dict[str, float | int]:
        """Aggregate request, latency, groundedness and cost metrics."""
        with self._lock:
            records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "failed_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_groundedness": 0.0,
                "total_input_tokens": 0,
                "total_output_tokens": 0,
                "total_estimated_cost_usd": 0.0,
            }

        answered = [record for record in records if record.status == "answered"]
        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        avg_groundedness = (
            sum(record.groundedness for record in answered) / len(answered) if answered else 0.0
        )
        return {
            "total_requests": total,
            "failed_requests": total - len(answered),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_groundedness": avg_groundedness,
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
        }


class Timer:
    """Context timer for turn latency."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
