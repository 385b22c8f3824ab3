"""
gateway/protocol.py — HTTP Wire Models

Request and response bodies for the browser-facing endpoints. Field names
follow the browser's camelCase wire format.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from tools.types import ClientCommand


class TurnStatus(str, Enum):
    DONE = "done"
    AWAITING_CLIENT = "awaiting_client"


# ─────────────────────────────────────────────────────────────────────────────
# Bootstrap
# ─────────────────────────────────────────────────────────────────────────────


class BootstrapRequest(BaseModel):
    """Optional layer catalog, under any of the names the browser has used."""
    model_config = ConfigDict(extra="ignore")

    layers: Any = None
    mapLayers: Any = None
    layerMetadata: Any = None

    def raw_catalog(self) -> Any:
        for candidate in (self.layers, self.mapLayers, self.layerMetadata):
            if candidate is not None:
                return candidate
        return None


class BootstrapResponse(BaseModel):
    magic: str


# ─────────────────────────────────────────────────────────────────────────────
# Chat
# ─────────────────────────────────────────────────────────────────────────────


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: Optional[str] = None
    toolResults: list[Any] = Field(default_factory=list)
    layerMetadata: Any = None

    @property
    def text(self) -> Optional[str]:
        if self.message is None or not self.message.strip():
            return None
        return self.message

    @property
    def is_empty(self) -> bool:
        return self.text is None and not self.toolResults


class AssistantMessageOut(BaseModel):
    role: str = "assistant"
    content: str = ""


class ChatResponse(BaseModel):
    assistantMessage: AssistantMessageOut
    commands: list[ClientCommand] = Field(default_factory=list)
    status: TurnStatus = TurnStatus.DONE
    newMagic: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Search
# ─────────────────────────────────────────────────────────────────────────────


class SearchAction(BaseModel):
    type: str = "zoom"
    x: float
    y: float
    level: int = 12
    term: str


class SearchSuggestion(BaseModel):
    id: str
    title: str
    subtitle: Optional[str] = None
    kind: str
    badge: str
    action: SearchAction


class SearchResponse(BaseModel):
    suggestions: list[SearchSuggestion] = Field(default_factory=list)
    newMagic: Optional[str] = None
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
