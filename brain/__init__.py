"""
brain/__init__.py — govmap-agent Reasoning Engine Client

Usage:
    from brain import LLMClientFactory

    client = LLMClientFactory.from_settings(settings)
    response = await client.generate(messages, LLMConfig(model="gpt-4.1-mini"), tools=schemas)
"""

from __future__ import annotations

from brain.llm_client import (
    BaseLLMClient,
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    RetryingLLMClient,
)
from brain.types import (
    FinishReason,
    LLMConfig,
    LLMResponse,
    Message,
    Role,
    TokenUsage,
    ToolCall,
    ToolResult,
    ToolSchema,
)

__all__ = [
    "LLMClientFactory",
    "BaseLLMClient",
    "RetryingLLMClient",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
    "Message",
    "LLMConfig",
    "LLMResponse",
    "ToolCall",
    "ToolResult",
    "ToolSchema",
    "TokenUsage",
    "Role",
    "FinishReason",
]


class LLMClientFactory:

    @staticmethod
    def create(provider: str, api_key: str | None = None, base_url: str | None = None) -> BaseLLMClient:
        provider = provider.lower().strip()
        if provider != "openai":
            raise ValueError(f"Unknown LLM provider: '{provider}'. Valid options: openai")
        if not api_key:
            raise LLMConnectionError("OPENAI_API_KEY is required", provider="openai")
        from brain.openai_client import OpenAIClient
        return OpenAIClient(api_key=api_key, base_url=base_url)

    @staticmethod
    def from_settings(settings) -> BaseLLMClient:
        """
        Create the client from Settings, wrapped in RetryingLLMClient.

        Reads settings.llm.retry (max_attempts, base_delay, max_delay).
        The default of one attempt means provider errors surface as-is.
        """
        primary = LLMClientFactory.create(
            provider=settings.llm.provider,
            api_key=settings.openai_api_key,
            base_url=settings.llm.base_url,
        )
        retry = settings.llm.retry
        return RetryingLLMClient(
            primary,
            max_attempts=retry.max_attempts,
            base_delay=retry.base_delay,
            max_delay=retry.max_delay,
        )

    @staticmethod
    def request_config(settings) -> LLMConfig:
        """Per-request generate() config from the llm section."""
        return LLMConfig(
            model=settings.llm.model,
            temperature=settings.llm.temperature,
            max_tokens=settings.llm.max_tokens,
            timeout_seconds=settings.llm.timeout_seconds,
        )
