"""Configuration models for the grounded QA engine."""

from __future__ import annotations

import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from grounded_qa.prompting.assembler import DEFAULT_PERSONA


class RetrievalConfig(BaseModel):
    """Configures sentence retrieval."""

    max_chunks: int = Field(default=3, ge=1)
    strategy: Literal["keyword", "ranked"] = "keyword"


class AgentConfig(BaseModel):
    """Configures orchestration, history retention and quality targets."""

    persona: str = Field(default=DEFAULT_PERSONA, min_length=1)
    include_history: bool = False
    max_history_turns: int = Field(default=10, ge=1)
    max_tool_rounds: int = Field(default=4, ge=1)
    target_latency_seconds: float = Field(default=8.0, gt=0.0)
    groundedness_target: float = Field(default=0.95, ge=0.0, le=1.0)


class ProviderConfig(BaseModel):
    """Configures the completion provider and its sampling parameters."""

    provider: Literal["openai", "offline"] = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=512, ge=1)
    request_timeout_seconds: float = Field(default=60.0, gt=0.0)
    api_key_env: str = "OPENAI_API_KEY"


class Settings(BaseModel):
    """Top-level settings assembled from the environment."""

    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    corpus_path: str | None = None
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from `GROUNDED_QA_*` variables (and a `.env` file)."""

        load_dotenv()
        agent_kwargs: dict[str, object] = {
            "include_history": _env_flag("GROUNDED_QA_INCLUDE_HISTORY", False),
            "max_history_turns": int(os.getenv("GROUNDED_QA_MAX_HISTORY_TURNS", "10")),
            "max_tool_rounds": int(os.getenv("GROUNDED_QA_MAX_TOOL_ROUNDS", "4")),
        }
        persona = os.getenv("GROUNDED_QA_PERSONA")
        if persona:
            agent_kwargs["persona"] = persona

        return cls(
            retrieval=RetrievalConfig(
                max_chunks=int(os.getenv("GROUNDED_QA_MAX_CHUNKS", "3")),
                strategy=os.getenv("GROUNDED_QA_RETRIEVAL_STRATEGY", "keyword"),
            ),
            agent=AgentConfig(**agent_kwargs),
            provider=ProviderConfig(
                provider=os.getenv("GROUNDED_QA_PROVIDER", "openai"),
                model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
                temperature=float(os.getenv("GROUNDED_QA_TEMPERATURE", "0.0")),
                max_output_tokens=int(os.getenv("GROUNDED_QA_MAX_OUTPUT_TOKENS", "512")),
                request_timeout_seconds=float(
                    os.getenv("GROUNDED_QA_REQUEST_TIMEOUT", "60")
                ),
            ),
            corpus_path=os.getenv("GROUNDED_QA_CORPUS_PATH") or None,
            log_level=os.getenv("GROUNDED_QA_LOG_LEVEL", "INFO"),
            log_format=os.getenv("GROUNDED_QA_LOG_FORMAT", "text"),
        )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
