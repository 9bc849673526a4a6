"""Parsers that turn document sources into `Document` objects."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from grounded_qa.errors import DataUnavailableError, NotFoundError
from grounded_qa.types import Document


class Parser(ABC):
    """Base parser interface used by the corpus store."""

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, path: Path, *, doc_id: str | None = None) -> Document:
        """Parse a file into text + metadata."""


class TextParser(Parser):
    """Parser for plain text documents."""

    extensions = (".txt", ".text")

    def parse(self, path: Path, *, doc_id: str | None = None) -> Document:
        return Document(
            doc_id=doc_id or path.stem,
            text=path.read_text(encoding="utf-8"),
            metadata={"source": str(path), "format": "text"},
        )


class MarkdownParser(Parser):
    """Parser for markdown documents."""

    extensions = (".md", ".markdown")

    def parse(self, path: Path, *, doc_id: str | None = None) -> Document:
        return Document(
            doc_id=doc_id or path.stem,
            text=path.read_text(encoding="utf-8"),
            metadata={"source": str(path), "format": "markdown"},
        )


class JsonParser(Parser):
    """Parser for JSON documents.

    A top-level `{"text": ...}` object is read as the document body; any other
    payload is serialized deterministically so that it can still be searched.
    """

    extensions = (".json",)

    def parse(self, path: Path, *, doc_id: str | None = None) -> Document:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
        metadata: dict[str, Any] = {"source": str(path), "format": "json"}
        if isinstance(payload, dict) and isinstance(payload.get("text"), str):
            text = payload["text"]
            metadata["keys"] = sorted(payload.keys())
        elif isinstance(payload, (dict, list)):
            text = json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2)
        else:
            text = str(payload)
        return Document(doc_id=doc_id or path.stem, text=text, metadata=metadata)


class ParserRegistry:
    """Maps file extension to parser implementation."""

    def __init__(self, parsers: list[Parser] | None = None) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [TextParser(), MarkdownParser(), JsonParser()]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def parse_path(self, path: str | Path, *, doc_id: str | None = None) -> Document:
        file_path = Path(path)
        if not file_path.is_file():
            raise NotFoundError(f"Document source not found: {file_path}")
        parser = self._parsers.get(file_path.suffix.lower())
        if parser is None:
            raise DataUnavailableError(
                f"No parser registered for extension: {file_path.suffix or '<none>'}"
            )
        return parser.parse(file_path, doc_id=doc_id)
