"""Keyword retrievers behind a swappable contract."""

from __future__ import annotations

from abc import ABC, abstractmethod

from grounded_qa.config import RetrievalConfig
from grounded_qa.retrieval.chunker import SentenceChunker
from grounded_qa.types import Chunk, Document, RetrievalResult


class Retriever(ABC):
    """Selects the chunks of a document relevant to a query."""

    @abstractmethod
    def retrieve(self, query: str, document: Document, max_chunks: int) -> RetrievalResult:
        """Return at most `max_chunks` distinct chunks of `document`."""


class KeywordRetriever(Retriever):
    """Unranked exact-keyword retriever.

    A sentence is selected when its lower-cased whitespace-separated words
    share at least one word with the lower-cased query. The first
    `max_chunks` selected sentences are returned in document order. Words
    keep their punctuation, so `moons?` does not match `moons`.
    """

    def __init__(self, chunker: SentenceChunker | None = None) -> None:
        self.chunker = chunker or SentenceChunker()

    def retrieve(self, query: str, document: Document, max_chunks: int) -> RetrievalResult:
        if max_chunks < 1:
            raise ValueError("max_chunks must be >= 1")
        keywords = _keywords(query)
        if not keywords:
            return RetrievalResult(query=query)

        selected: list[Chunk] = []
        for chunk in self.chunker.chunk(document):
            if keywords & _keywords(chunk.text):
                selected.append(chunk)
                if len(selected) == max_chunks:
                    break
        return RetrievalResult(query=query, chunks=tuple(selected))


class RankedKeywordRetriever(KeywordRetriever):
    """Keyword retriever ordered by query coverage instead of position.

    Uses the same selection rule as `KeywordRetriever`, then ranks matches by
    the fraction of query keywords they contain. Ties keep document order.
    """

    def retrieve(self, query: str, document: Document, max_chunks: int) -> RetrievalResult:
        if max_chunks < 1:
            raise ValueError("max_chunks must be >= 1")
        keywords = _keywords(query)
        if not keywords:
            return RetrievalResult(query=query)

        scored: list[tuple[float, Chunk]] = []
        for chunk in self.chunker.chunk(document):
            overlap = len(keywords & _keywords(chunk.text))
            if overlap:
                scored.append((overlap / len(keywords), chunk))
        ranked = sorted(scored, key=lambda item: item[0], reverse=True)
        return RetrievalResult(
            query=query, chunks=tuple(chunk for _, chunk in ranked[:max_chunks])
        )


def build_retriever(config: RetrievalConfig | None = None) -> Retriever:
    config = config or RetrievalConfig()
    if config.strategy == "ranked":
        return RankedKeywordRetriever()
    return KeywordRetriever()


def _keywords(text: str) -> set[str]:
    return set(text.lower().split())
