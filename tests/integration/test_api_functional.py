from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from grounded_qa.api.main import create_app
from grounded_qa.config import AgentConfig, ProviderConfig, Settings

XYLAR = (
    "Planet Xylar orbits a quiet orange star. "
    "Xylar has a thin atmosphere made mostly of neon. "
    "Survey records make no mention of Xylar having any moons."
)


def _client(**agent: object) -> TestClient:
    settings = Settings(
        provider=ProviderConfig(provider="offline"),
        agent=AgentConfig(**agent),
    )
    return TestClient(create_app(settings))


def test_api_corpus_query_trace_metrics(tmp_path: Path) -> None:
    client = _client()
    doc = tmp_path / "xylar.txt"
    doc.write_text(XYLAR, encoding="utf-8")

    health = client.get("/health").json()
    assert health["provider_configured"] is True
    assert health["document_loaded"] is False

    corpus_resp = client.post("/corpus", json={"path": str(doc)})
    assert corpus_resp.status_code == 200
    assert corpus_resp.json() == {"doc_id": "xylar", "characters": len(XYLAR), "sentences": 3}

    query_resp = client.post("/query", json={"question": "Does Xylar have any moons?"})
    assert query_resp.status_code == 200
    payload = query_resp.json()
    assert payload["ok"] is True
    assert "no mention" in payload["answer"]

    calc = client.post("/query", json={"question": "What is 25 + 75 / 3?"}).json()
    assert "50.0" in calc["answer"]
    assert "TOOL_DISPATCH" in calc["states"]

    trace_resp = client.get(f"/traces/{calc['trace_id']}")
    assert trace_resp.status_code == 200
    assert trace_resp.json()["tool_traces"][0]["name"] == "calculator"

    source_resp = client.post("/sources/search", json={"query": "neon", "max_chunks": 2})
    assert source_resp.status_code == 200
    assert source_resp.json()["items"][0]["text"] == "Xylar has a thin atmosphere made mostly of neon"

    metrics = client.get("/metrics").json()
    assert metrics["total_requests"] == 2
    assert client.get("/traces").json()["items"]


def test_api_query_without_document_is_labelled_failure() -> None:
    client = _client()

    payload = client.post("/query", json={"question": "Anything?"}).json()

    assert payload["ok"] is False
    assert payload["error_kind"] == "data_unavailable"
    assert client.post("/sources/search", json={"query": "x"}).status_code == 409


def test_api_corpus_errors(tmp_path: Path) -> None:
    client = _client()

    assert client.post("/corpus", json={"path": str(tmp_path / "missing.txt")}).status_code == 404
    assert client.post("/corpus", json={}).status_code == 422
    assert client.get("/traces/unknown").status_code == 404


def test_api_sessions_keep_bounded_history() -> None:
    client = _client(include_history=True, max_history_turns=1)
    client.post("/corpus", json={"text": XYLAR, "doc_id": "xylar"})

    for question in ("Does Xylar have any moons?", "What is Xylar's atmosphere made of?"):
        resp = client.post("/query", json={"question": question, "session_id": "s1"})
        assert resp.json()["ok"] is True

    deleted = client.delete("/sessions/s1")
    assert deleted.json() == {"deleted": "s1", "turns": 1}
    assert client.delete("/sessions/s1").status_code == 404


def test_api_without_api_key_reports_configuration_failure(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("GROUNDED_QA_TEST_MISSING_KEY", raising=False)
    settings = Settings(
        provider=ProviderConfig(provider="openai", api_key_env="GROUNDED_QA_TEST_MISSING_KEY"),
    )
    client = TestClient(create_app(settings))

    assert client.get("/health").json()["provider_configured"] is False
    client.post("/corpus", json={"text": XYLAR})

    payload = client.post("/query", json={"question": "Does Xylar have any moons?"}).json()
    assert payload["ok"] is False
    assert payload["error_kind"] == "configuration"
    assert payload["states"] == ["START", "FAILED"]
