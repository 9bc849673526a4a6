"""FastAPI entrypoint for corpus/query/session/trace endpoints."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, model_validator

from grounded_qa.agent.completion import create_completion_provider
from grounded_qa.agent.history import ConversationHistory
from grounded_qa.agent.orchestrator import AnswerOrchestrator
from grounded_qa.agent.registry import ToolRegistry
from grounded_qa.agent.tools import register_builtin_tools
from grounded_qa.config import Settings
from grounded_qa.corpus.store import CorpusStore
from grounded_qa.errors import ConfigurationError, DataUnavailableError, NotFoundError
from grounded_qa.obs.logging_config import configure_logging
from grounded_qa.obs.tracing import TraceStore
from grounded_qa.retrieval.chunker import SentenceChunker
from grounded_qa.retrieval.retriever import build_retriever

logger = logging.getLogger(__name__)


class CorpusRequest(BaseModel):
    path: str | None = None
    text: str | None = None
    doc_id: str | None = None

    @model_validator(mode="after")
    def _one_source(self) -> "CorpusRequest":
        if (self.path is None) == (self.text is None):
            raise ValueError("Provide exactly one of 'path' or 'text'.")
        return self


class QueryRequest(BaseModel):
    question: str = Field(min_length=1)
    session_id: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0.0)


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    max_chunks: int = Field(default=3, ge=1, le=20)


class _Session:
    def __init__(self, history: ConversationHistory) -> None:
        self.history = history
        self.lock = threading.Lock()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Wire corpus, retriever, tools and provider into a FastAPI app."""

    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_format)

    corpus = CorpusStore()
    if settings.corpus_path:
        corpus.load(settings.corpus_path)
    retriever = build_retriever(settings.retrieval)
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        corpus=corpus,
        retriever=retriever,
        max_chunks=settings.retrieval.max_chunks,
    )
    try:
        provider = create_completion_provider(settings.provider)
    except ConfigurationError as exc:
        logger.warning("%s; questions will fail until it is set", exc)
        provider = None
    trace_store = TraceStore()
    orchestrator = AnswerOrchestrator(
        corpus=corpus,
        retriever=retriever,
        tool_registry=registry,
        provider=provider,
        config=settings.agent,
        retrieval_config=settings.retrieval,
        trace_store=trace_store,
    )
    sessions: dict[str, _Session] = {}
    sessions_lock = threading.Lock()

    def _session(session_id: str) -> _Session:
        with sessions_lock:
            session = sessions.get(session_id)
            if session is None:
                session = _Session(orchestrator.new_session())
                sessions[session_id] = session
            return session

    app = FastAPI(title="Grounded QA Agent", version="0.1.0")

    @app.get("/health")
    def health() -> dict[str, Any]:
        document = corpus.document
        return {
            "status": "ok",
            "provider_configured": orchestrator.provider is not None,
            "provider": settings.provider.provider,
            "document_loaded": document is not None,
            "doc_id": document.doc_id if document is not None else None,
            "tools": [spec.name for spec in registry.schemas()],
            "trace_count": len(trace_store),
        }

    @app.post("/corpus")
    def load_corpus(request: CorpusRequest) -> dict[str, Any]:
        try:
            if request.path is not None:
                document = corpus.load(request.path, doc_id=request.doc_id)
            else:
                document = corpus.load_text(request.text or "", doc_id=request.doc_id or "inline")
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except (DataUnavailableError, ValueError, OSError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "doc_id": document.doc_id,
            "characters": len(document.text),
            "sentences": len(SentenceChunker().chunk(document)),
        }

    @app.post("/query")
    def query(request: QueryRequest) -> dict[str, Any]:
        if request.session_id is None:
            result = orchestrator.answer(request.question, timeout=request.timeout_seconds)
        else:
            session = _session(request.session_id)
            with session.lock:
                result = orchestrator.answer(
                    request.question,
                    session.history,
                    timeout=request.timeout_seconds,
                )
        payload = asdict(result)
        payload["ok"] = result.ok
        return payload

    @app.delete("/sessions/{session_id}")
    def delete_session(session_id: str) -> dict[str, Any]:
        with sessions_lock:
            removed = sessions.pop(session_id, None)
        if removed is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return {"deleted": session_id, "turns": len(removed.history)}

    @app.post("/sources/search")
    def source_search(request: SourceSearchRequest) -> dict[str, Any]:
        document = corpus.document
        if document is None:
            raise HTTPException(status_code=409, detail="No document has been loaded.")
        result = retriever.retrieve(request.query, document, request.max_chunks)
        return {
            "context": result.context,
            "items": [asdict(chunk) for chunk in result.chunks],
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(record) for record in trace_store.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return trace_store.summary()

    return app


app = create_app()
