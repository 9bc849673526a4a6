"""Grounded question answering over a single document with tool calling."""

from .config import AgentConfig, ProviderConfig, RetrievalConfig, Settings

__all__ = ["AgentConfig", "ProviderConfig", "RetrievalConfig", "Settings"]
