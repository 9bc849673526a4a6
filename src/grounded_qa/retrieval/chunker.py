"""Sentence chunking of corpus documents."""

from __future__ import annotations

from grounded_qa.types import Chunk, Document

SENTENCE_TERMINATOR = "."


class SentenceChunker:
    """Splits a document into one chunk per sentence.

    Sentences are the pieces between `.` terminators, trimmed, with empty
    pieces dropped. Each chunk keeps the offset of its trimmed text in the
    source so that `document.text[offset:offset + length] == chunk.text`.
    """

    def __init__(self, terminator: str = SENTENCE_TERMINATOR) -> None:
        if not terminator:
            raise ValueError("terminator must be a non-empty string")
        self.terminator = terminator

    def chunk(self, document: Document) -> list[Chunk]:
        chunks: list[Chunk] = []
        position = 0
        for piece in document.text.split(self.terminator):
            start = position
            position += len(piece) + len(self.terminator)

            stripped = piece.strip()
            if not stripped:
                continue
            offset = start + (len(piece) - len(piece.lstrip()))
            chunks.append(
                Chunk(
                    chunk_id=f"{document.doc_id}-chunk-{len(chunks):04d}",
                    doc_id=document.doc_id,
                    index=len(chunks),
                    text=stripped,
                    offset=offset,
                    length=len(stripped),
                )
            )
        return chunks
