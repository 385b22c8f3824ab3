"""
gateway/session_auth.py — Session Authenticator

Validates (session id, secret) pairs and rotates expired secrets.

authenticate() rules, in order:
    missing id or secret, or no stored session  → UnauthenticatedError
    idle longer than ttl                         → delete, SessionExpiredError
    secret mismatch                              → InvalidSecretError
    secret past its lifetime                     → rotate, continue
    otherwise                                    → continue
    last_seen_at = now

Each authenticate() does one store read and at most one delete. It never
writes: the caller persists the session once after the request is handled,
which also saves a rotated secret.
"""

from __future__ import annotations

import hmac
import time
from typing import Callable, Optional

from pydantic import BaseModel

from agent.session import Session, generate_secret
from exceptions import InvalidSecretError, SessionExpiredError, UnauthenticatedError
from observability.logger import get_logger, short_id
from tools.layer_catalog import LayerDefinition

from gateway.session_store import SessionStore

log = get_logger(__name__)


class SessionIdentity(BaseModel):
    """What the browser presents: the sid cookie and the secret header."""
    session_id: Optional[str] = None
    secret: Optional[str] = None


class AuthResult(BaseModel):
    session: Session
    rotated_secret: Optional[str] = None


class SessionAuthenticator:

    def __init__(
        self,
        store: SessionStore,
        ttl_seconds: int = 3600,
        secret_lifetime_seconds: int = 600,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.secret_lifetime_seconds = secret_lifetime_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, store: SessionStore) -> "SessionAuthenticator":
        return cls(
            store,
            ttl_seconds=settings.session.ttl_seconds,
            secret_lifetime_seconds=settings.session.secret_lifetime_seconds,
        )

    async def bootstrap(self, layer_catalog: Optional[list[LayerDefinition]] = None) -> Session:
        """Create a session and write it once with the session TTL."""
        session = Session.create(
            now=self._clock(),
            secret_lifetime_seconds=self.secret_lifetime_seconds,
            layer_catalog=layer_catalog,
        )
        await self.store.set(session, self.ttl_seconds)
        log.info(
            "session_auth.bootstrapped",
            session=short_id(session.id),
            layers=len(layer_catalog or []),
        )
        return session

    async def authenticate(self, identity: SessionIdentity) -> AuthResult:
        if not identity.session_id or not identity.secret:
            log.info("session_auth.rejected", reason="missing_credentials")
            raise UnauthenticatedError("missing session id or secret")

        session = await self.store.get(identity.session_id)
        if session is None:
            log.info("session_auth.rejected", reason="unknown_session",
                     session=short_id(identity.session_id))
            raise UnauthenticatedError("no such session")

        now = self._clock()
        if session.is_idle(now, self.ttl_seconds):
            await self.store.delete(session.id)
            log.info("session_auth.rejected", reason="idle_timeout", session=short_id(session.id))
            raise SessionExpiredError("session idle for too long")

        if not hmac.compare_digest(session.secret.encode(), identity.secret.encode()):
            log.warning("session_auth.rejected", reason="invalid_secret", session=short_id(session.id))
            raise InvalidSecretError("secret mismatch")

        rotated: Optional[str] = None
        if session.secret_expired(now):
            rotated = generate_secret()
            session.secret = rotated
            session.secret_expires_at = now + self.secret_lifetime_seconds
            log.info("session_auth.rotated", session=short_id(session.id))

        session.last_seen_at = now
        return AuthResult(session=session, rotated_secret=rotated)

    async def persist(self, session: Session) -> None:
        """The single write that follows an authenticated request."""
        await self.store.set(session, self.ttl_seconds)
