"""
agent/session.py — Per-Session State

One Session exists per browser session. It is the unit of persistence:
the store keeps it as a single JSON blob under session:<id>, and every
authenticated request reads it once and writes it back once.

The session id is a routing key only and never reaches the reasoning engine.
"""

from __future__ import annotations

import secrets
import uuid
from typing import Optional

from pydantic import BaseModel, Field

from brain.types import Message
from tools.layer_catalog import LayerDefinition

SECRET_BYTES = 32


def generate_secret() -> str:
    """Fresh rotating secret: 32 random bytes, hex encoded."""
    return secrets.token_hex(SECRET_BYTES)


class Session(BaseModel):
    """All state kept for one browser session. Timestamps are epoch seconds."""

    id: str
    secret: str
    secret_expires_at: float
    created_at: float
    last_seen_at: float
    messages: list[Message] = Field(default_factory=list)
    layer_catalog: Optional[list[LayerDefinition]] = None

    # ── Factory ───────────────────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        now: float,
        secret_lifetime_seconds: float,
        layer_catalog: Optional[list[LayerDefinition]] = None,
    ) -> "Session":
        return cls(
            id=str(uuid.uuid4()),
            secret=generate_secret(),
            secret_expires_at=now + secret_lifetime_seconds,
            created_at=now,
            last_seen_at=now,
            layer_catalog=layer_catalog,
        )

    # ── Serialization ─────────────────────────────────────────────────────────

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Session":
        return cls.model_validate_json(raw)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def is_idle(self, now: float, idle_timeout_seconds: float) -> bool:
        return now - self.last_seen_at > idle_timeout_seconds

    def secret_expired(self, now: float) -> bool:
        return self.secret_expires_at < now

    def merge_layer_catalog(self, layers: Optional[list[LayerDefinition]]) -> bool:
        """Adopt a catalog snapshot only when the session has none yet."""
        if self.layer_catalog or not layers:
            return False
        self.layer_catalog = layers
        return True

    def __repr__(self) -> str:
        return f"<Session id={self.id[:8]} messages={len(self.messages)}>"
