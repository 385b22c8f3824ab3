"""
tools/types.py — Capability System Data Models

Shared types used across the capability registry, the dispatcher, the
client executor and the HTTP layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from brain.types import ToolResult, ToolSchema


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class ExecutionVenue(str, Enum):
    """Where a capability runs."""
    SERVER = "server"     # executed immediately by the dispatcher
    CLIENT = "client"     # deferred to the browser, result arrives next request


class CallingConvention(str, Enum):
    """How a map function expects its arguments."""
    KEYWORD = "keyword"         # fn({ ...args })
    POSITIONAL = "positional"   # fn(arg0, arg1, ...)


# ─────────────────────────────────────────────────────────────────────────────
# Capability registration metadata
# ─────────────────────────────────────────────────────────────────────────────


class CapabilityDescriptor(BaseModel):
    """
    Full metadata for a registered capability.
    Stored in CapabilityRegistry and rendered for the reasoning engine.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    venue: ExecutionVenue = ExecutionVenue.SERVER
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    args_model: Optional[type[BaseModel]] = None
    category: str = "general"       # e.g. "map", "search", "geo"
    usage: str = ""                 # one-line rule shown in the capability guide

    @property
    def is_client(self) -> bool:
        return self.venue == ExecutionVenue.CLIENT

    def to_llm_schema(self) -> ToolSchema:
        """Return the provider-agnostic schema the brain expects."""
        return ToolSchema(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )


Handler = Callable[..., Any]


# ─────────────────────────────────────────────────────────────────────────────
# Client-deferred commands
# ─────────────────────────────────────────────────────────────────────────────


class MapCall(BaseModel):
    """
    One map function call for the browser to execute.

    With convention=POSITIONAL, args is an ordered list the client spreads
    into the call. With KEYWORD, args is a single options object.
    """
    fn: str
    convention: CallingConvention = CallingConvention.KEYWORD
    args: Any = Field(default_factory=dict)


class ClientCommand(BaseModel):
    """One client-deferred invocation, tagged with the id its result must carry."""
    tool_call_id: str
    capability: str
    calls: list[MapCall] = Field(default_factory=list)
    note: Optional[str] = None


class ClientToolResult(BaseModel):
    """A result reported by the client for one map call of a command."""
    model_config = ConfigDict(extra="allow")

    tool_call_id: Optional[str] = None
    fn: Optional[str] = None
    result: Any = None


# ─────────────────────────────────────────────────────────────────────────────
# Dispatch outcome
# ─────────────────────────────────────────────────────────────────────────────


class DispatchOutcome(BaseModel):
    """
    Result of dispatching one model turn's invocations.

    executed_results: one ToolResult per server invocation, in request order,
                      including error results for unknown or invalid calls.
    deferred_commands: one ClientCommand per client invocation.
    """
    executed_results: list[ToolResult] = Field(default_factory=list)
    deferred_commands: list[ClientCommand] = Field(default_factory=list)

    @property
    def awaiting_client(self) -> bool:
        return len(self.deferred_commands) > 0
