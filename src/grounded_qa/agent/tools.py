"""Built-in tool implementations."""

from __future__ import annotations

from pydantic import BaseModel, Field

from grounded_qa.agent.arithmetic import evaluate
from grounded_qa.agent.registry import ToolRegistry, ToolSpec
from grounded_qa.corpus.store import CorpusStore
from grounded_qa.errors import ArithmeticExpressionError
from grounded_qa.retrieval.retriever import Retriever


class CalculatorInput(BaseModel):
    expression: str = Field(
        min_length=1,
        description="Arithmetic expression using numbers, + - * / and parentheses, e.g. '25 + 75 / 3'.",
    )


class DocumentSearchInput(BaseModel):
    query: str = Field(min_length=1, description="Keywords to look up in the loaded document.")
    max_chunks: int | None = Field(
        default=None, ge=1, le=10, description="Maximum sentences to return."
    )


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    corpus: CorpusStore,
    retriever: Retriever,
    max_chunks: int = 3,
) -> None:
    """Register the default tool set.

    Tools:
    - `calculator`: safe arithmetic over `+ - * / ( )`.
    - `search_document`: keyword lookup over the loaded document, with
      sentence citations. Returns at most `max_chunks` sentences unless
      the call asks for a different limit.
    """

    def _calculate(input_data: CalculatorInput) -> str:
        try:
            return str(evaluate(input_data.expression))
        except ArithmeticExpressionError as exc:
            return f"ERROR: could not evaluate {input_data.expression!r}: {exc}"

    def _search(input_data: DocumentSearchInput) -> str:
        document = corpus.document
        if document is None:
            return "ERROR: no document is loaded"
        limit = input_data.max_chunks or max_chunks
        result = retriever.retrieve(input_data.query, document, limit)
        if not result:
            return "NO_RESULTS"
        return "\n".join(f"[{chunk.chunk_id}] {chunk.text}." for chunk in result.chunks)

    registry.register(
        ToolSpec(
            name="calculator",
            description="Evaluate an arithmetic expression and return the numeric result.",
            args_schema=CalculatorInput,
            handler=_calculate,
            tags=["math"],
        )
    )
    registry.register(
        ToolSpec(
            name="search_document",
            description="Search the loaded document and return matching sentences with citations.",
            args_schema=DocumentSearchInput,
            handler=_search,
            tags=["retrieval", "rag"],
        )
    )
