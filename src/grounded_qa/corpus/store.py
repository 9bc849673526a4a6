"""Read-only holder of the single loaded corpus document."""

from __future__ import annotations

import logging
from pathlib import Path

from grounded_qa.corpus.parser import ParserRegistry
from grounded_qa.errors import DataUnavailableError
from grounded_qa.types import Document

logger = logging.getLogger(__name__)


class CorpusStore:
    """Holds one immutable document.

    Loading replaces the previous document wholesale. There are no mutation
    operations, so concurrent readers need no synchronization.
    """

    def __init__(self, parser_registry: ParserRegistry | None = None) -> None:
        self._parser_registry = parser_registry or ParserRegistry()
        self._document: Document | None = None

    @property
    def document(self) -> Document | None:
        return self._document

    @property
    def is_loaded(self) -> bool:
        return self._document is not None

    def load(self, source: str | Path, *, doc_id: str | None = None) -> Document:
        """Load a document from a path, raising `NotFoundError` if it is missing."""

        document = self._parser_registry.parse_path(source, doc_id=doc_id)
        self._document = document
        logger.info(
            "Loaded document %s (%d chars) from %s",
            document.doc_id,
            len(document.text),
            source,
        )
        return document

    def load_text(self, text: str, *, doc_id: str = "inline") -> Document:
        document = Document(doc_id=doc_id, text=text, metadata={"source": "inline"})
        self._document = document
        logger.info("Loaded inline document %s (%d chars)", doc_id, len(text))
        return document

    def text(self) -> str:
        if self._document is None:
            raise DataUnavailableError("No document has been loaded into the corpus.")
        return self._document.text
