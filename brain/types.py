"""
brain/types.py — Reasoning Engine Data Models

Shared types used by the LLM client, the history manager and the
orchestrator. The OpenAI client maps its native response shapes into
these types, and sessions persist Message objects verbatim.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"           # tool result fed back to the model


class FinishReason(str, Enum):
    STOP = "stop"               # normal completion
    TOOL_CALLS = "tool_calls"   # model wants to call tools
    LENGTH = "length"           # hit max_tokens
    ERROR = "error"


# ─────────────────────────────────────────────────────────────────────────────
# Tool calling types
# ─────────────────────────────────────────────────────────────────────────────


class ToolCall(BaseModel):
    """A single tool invocation requested by the model."""
    id: str = Field(..., description="Invocation id (from the model)")
    name: str = Field(..., description="Capability name to call")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Parsed JSON arguments")


class ToolResult(BaseModel):
    """The result of one invocation — fed back to the model."""
    tool_call_id: str = Field(..., description="Matches ToolCall.id")
    name: str = Field(default="", description="Capability name (for context)")
    content: str = Field(..., description="Serialized result (JSON string or plain text)")
    is_error: bool = Field(default=False, description="True if execution failed")


class ToolSchema(BaseModel):
    """
    Provider-agnostic tool definition.
    The client translates this into the provider's function schema.
    """
    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )


# ─────────────────────────────────────────────────────────────────────────────
# Message types
# ─────────────────────────────────────────────────────────────────────────────


class Message(BaseModel):
    """
    A single message in the conversation.

    For tool results, role=TOOL and tool_result is populated.
    For tool requests made by the assistant, role=ASSISTANT and tool_calls is populated.
    """
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None     # assistant → wants to call tools
    tool_result: Optional[ToolResult] = None         # tool → result of one invocation

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[list[ToolCall]] = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool_response(cls, result: ToolResult) -> "Message":
        return cls(role=Role.TOOL, tool_result=result, content=result.content)

    @property
    def requests_tools(self) -> bool:
        return self.role == Role.ASSISTANT and bool(self.tool_calls)

    @property
    def tool_call_id(self) -> Optional[str]:
        return self.tool_result.tool_call_id if self.tool_result else None

    @property
    def requested_ids(self) -> list[str]:
        return [tc.id for tc in self.tool_calls or []]


# ─────────────────────────────────────────────────────────────────────────────
# LLM config
# ─────────────────────────────────────────────────────────────────────────────


class LLMConfig(BaseModel):
    """Per-request configuration for a generate() call."""
    model: str
    temperature: float = 0.3
    max_tokens: int = 2048
    top_p: float = 1.0
    timeout_seconds: float = 60.0


# ─────────────────────────────────────────────────────────────────────────────
# LLM response
# ─────────────────────────────────────────────────────────────────────────────


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMResponse(BaseModel):
    """Normalised response from the provider."""
    content: Optional[str] = None               # text response (None if tool_calls only)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def text(self) -> str:
        return self.content or ""
