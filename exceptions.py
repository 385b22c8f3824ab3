"""
exceptions.py — govmap-agent Unified Error Hierarchy

All project-specific exceptions live here. Every layer of the stack
raises typed subclasses of GovmapAgentError — never bare Exception.

Import from here, not from individual modules:
    from exceptions import InvalidSecretError, MalformedRequestError

Hierarchy:
    GovmapAgentError
    ├── SessionError                  (surfaced as 401, generic message)
    │   ├── UnauthenticatedError
    │   ├── SessionExpiredError
    │   └── InvalidSecretError
    ├── MalformedRequestError         (surfaced as 400)
    ├── CapabilityError
    │   ├── CapabilityNotFoundError
    │   ├── CapabilityValidationError
    │   └── CapabilityExecutionError
    ├── HistoryError
    │   └── SummarizationError
    ├── StoreError
    ├── SearchError
    │   ├── SearchUnavailableError    (surfaced as 503)
    │   └── SearchProviderError       (surfaced as 502)
    └── LLMError  (re-exported from brain for convenience)
        ├── LLMConnectionError
        ├── LLMRateLimitError
        ├── LLMContextError
        └── LLMInvalidRequestError
"""

from __future__ import annotations


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class GovmapAgentError(Exception):
    """Base class for all govmap-agent exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Session layer
# ─────────────────────────────────────────────────────────────────────────────

class SessionError(GovmapAgentError):
    """
    Base for session authentication failures.

    The HTTP layer never tells the client which subclass fired, to avoid
    leaking whether a session id exists.
    """

    status_code: int = 401


class UnauthenticatedError(SessionError):
    """Session id or secret missing, or no stored session for the id."""


class SessionExpiredError(SessionError):
    """Session was idle for longer than the configured timeout."""


class InvalidSecretError(SessionError):
    """Presented secret does not match the stored one."""


# ─────────────────────────────────────────────────────────────────────────────
# Request layer
# ─────────────────────────────────────────────────────────────────────────────

class MalformedRequestError(GovmapAgentError):
    """Request is missing required fields. Not retried."""

    status_code: int = 400


# ─────────────────────────────────────────────────────────────────────────────
# Capability layer
# ─────────────────────────────────────────────────────────────────────────────

class CapabilityError(GovmapAgentError):
    """Base for capability lookup, validation and execution errors."""


class CapabilityNotFoundError(CapabilityError):
    """Requested capability is not declared in the registry."""

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        self.available = available or []
        super().__init__(
            f"Unknown capability '{name}'. Available: {', '.join(self.available) or 'none'}"
        )


class CapabilityValidationError(CapabilityError):
    """Capability arguments failed schema validation."""


class CapabilityExecutionError(CapabilityError):
    """A server-immediate capability raised or returned an error."""


# ─────────────────────────────────────────────────────────────────────────────
# History layer
# ─────────────────────────────────────────────────────────────────────────────

class HistoryError(GovmapAgentError):
    """Base for conversation history errors."""


class SummarizationError(HistoryError):
    """The reasoning engine failed to produce a usable history summary."""


# ─────────────────────────────────────────────────────────────────────────────
# Store layer
# ─────────────────────────────────────────────────────────────────────────────

class StoreError(GovmapAgentError):
    """A session store read, write or delete failed."""


# ─────────────────────────────────────────────────────────────────────────────
# Search layer
# ─────────────────────────────────────────────────────────────────────────────

class SearchError(GovmapAgentError):
    """Base for the place-search endpoint."""

    status_code: int = 502


class SearchUnavailableError(SearchError):
    """No Google key configured on the server."""

    status_code: int = 503


class SearchProviderError(SearchError):
    """The autocomplete provider failed or returned an HTTP error."""

    status_code: int = 502


# ─────────────────────────────────────────────────────────────────────────────
# LLM layer (re-exported; defined in brain/llm_client.py)
# ─────────────────────────────────────────────────────────────────────────────

from brain.llm_client import (  # noqa: E402,F401
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)


__all__ = [
    "GovmapAgentError",
    # Session
    "SessionError",
    "UnauthenticatedError",
    "SessionExpiredError",
    "InvalidSecretError",
    # Request
    "MalformedRequestError",
    # Capability
    "CapabilityError",
    "CapabilityNotFoundError",
    "CapabilityValidationError",
    "CapabilityExecutionError",
    # History
    "HistoryError",
    "SummarizationError",
    # Store
    "StoreError",
    # Search
    "SearchError",
    "SearchUnavailableError",
    "SearchProviderError",
    # LLM (re-exported)
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
]
