"""
brain/llm_client.py — Abstract LLM Client + Retry

The provider implementation subclasses BaseLLMClient and implements generate().

  - _call_with_retry() — exponential backoff on transient errors
  - RetryingLLMClient — wraps a client with retry. With max_attempts=1
    (the default) errors surface immediately; the orchestration loop
    itself never retries a failed turn.
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Optional

from brain.types import LLMConfig, LLMResponse, Message, ToolSchema


class BaseLLMClient(ABC):
    """
    Abstract base for reasoning-engine clients.

    Subclasses must implement:
      - generate() -> call the model, return normalised LLMResponse
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
    ) -> LLMResponse:
        """Call the model and return a normalised response. tools=None disables tool use."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# ─────────────────────────────────────────────────────────────────────────────
# Retry logic
# ─────────────────────────────────────────────────────────────────────────────


async def _call_with_retry(
    client: BaseLLMClient,
    messages: list[Message],
    config: LLMConfig,
    tools: Optional[list[ToolSchema]],
    max_attempts: int = 1,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
) -> LLMResponse:
    """
    Call client.generate() with exponential backoff on transient errors.

    Retries on LLMConnectionError and LLMRateLimitError only. Context and
    invalid-request errors are permanent and propagate immediately.

    Backoff formula: min(base_delay * 2^attempt + jitter, max_delay)
    If LLMRateLimitError carries retry_after, that value is used instead.
    """
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await client.generate(messages=messages, config=config, tools=tools)

        except (LLMConnectionError, LLMRateLimitError) as e:
            last_error = e

            if attempt == max_attempts - 1:
                break

            if isinstance(e, LLMRateLimitError) and e.retry_after:
                delay = min(e.retry_after, max_delay)
            else:
                jitter = random.uniform(0, 0.5)
                delay = min(base_delay * (2 ** attempt) + jitter, max_delay)

            from observability.logger import get_logger
            _log = get_logger("brain.retry")
            _log.warning(
                "llm.retrying",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay_s=round(delay, 2),
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay)

    raise last_error  # type: ignore[misc]


class RetryingLLMClient(BaseLLMClient):
    """
    Wraps a client with exponential-backoff retry on transient errors.

    Usage:
        client = RetryingLLMClient(OpenAIClient(api_key=...), max_attempts=2)
        response = await client.generate(messages, config)
    """

    def __init__(
        self,
        inner: BaseLLMClient,
        max_attempts: int = 1,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
    ):
        super().__init__()
        self._inner = inner
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._max_delay = max_delay

    @property
    def inner(self) -> BaseLLMClient:
        return self._inner

    async def generate(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
    ) -> LLMResponse:
        return await _call_with_retry(
            client=self._inner,
            messages=messages,
            config=config,
            tools=tools,
            max_attempts=self._max_attempts,
            base_delay=self._base_delay,
            max_delay=self._max_delay,
        )

    def __repr__(self) -> str:
        return f"<RetryingLLMClient inner={self._inner!r} attempts={self._max_attempts}>"


# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class LLMError(Exception):
    """Base exception for all reasoning-engine client errors."""
    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class LLMConnectionError(LLMError):
    """Provider unreachable or authentication failed."""


class LLMRateLimitError(LLMError):
    """Rate limit hit — retry with exponential backoff."""
    def __init__(self, message: str, provider: str = "", retry_after: Optional[float] = None):
        super().__init__(message, provider)
        self.retry_after = retry_after


class LLMContextError(LLMError):
    """Input exceeds model context window."""


class LLMInvalidRequestError(LLMError):
    """Bad request — invalid parameters or an invalid conversation."""
