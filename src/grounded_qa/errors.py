"""Error taxonomy shared by the corpus, tool and orchestration layers."""

from __future__ import annotations


class GroundedQAError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(GroundedQAError):
    """A credential or completion provider is missing."""


class DataUnavailableError(GroundedQAError):
    """The corpus has no loaded document or the source cannot be read."""


class NotFoundError(DataUnavailableError):
    """A document source path does not exist."""


class UnknownToolError(GroundedQAError, LookupError):
    """A tool invocation named a tool that is not registered."""


class ToolArgumentError(GroundedQAError, ValueError):
    """A tool invocation carried missing, invalid or duplicated arguments."""


class ProviderError(GroundedQAError):
    """The completion provider failed (network, auth, rate limit, timeout)."""


class ArithmeticExpressionError(GroundedQAError, ValueError):
    """An arithmetic expression could not be parsed or evaluated."""
