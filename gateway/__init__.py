"""
gateway/ — HTTP Surface

FastAPI app between the browser and the agent core: session bootstrap and
authentication, the chat turn endpoint, and place-search suggestions.
"""

from gateway.app import create_app
from gateway.chat_service import ChatService
from gateway.session_auth import AuthResult, SessionAuthenticator, SessionIdentity
from gateway.session_store import InMemorySessionStore, RedisSessionStore, SessionStore

__all__ = [
    "create_app",
    "ChatService",
    "SessionAuthenticator",
    "SessionIdentity",
    "AuthResult",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
]
