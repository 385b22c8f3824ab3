"""
gateway/chat_service.py — Chat Turn Handling

One POST /chat request, start to finish:

    authenticate (one read, maybe one delete)
      → reject if there is neither text nor client tool results
      → adopt the layer catalog snapshot if the session has none
      → append client tool results, then the user text; compact; trim
      → run the orchestration loop
      → append the loop's messages; trim
      → persist once
      → respond with the final assistant text, deferred commands and any
        rotated secret

A reasoning engine failure propagates before the persist, so the stored
session is exactly what it was before the request.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from agent.history import HistoryManager, tool_messages_from_client
from agent.orchestrator import LoopState, Orchestrator
from agent.session import Session
from brain.types import Message, Role
from exceptions import MalformedRequestError
from observability.logger import bind_session, get_logger
from tools.layer_catalog import MAX_FIELDS_PER_LAYER, MAX_LAYERS, normalize_layer_catalog
from tools.server_capabilities import detect_language

from gateway.protocol import AssistantMessageOut, ChatRequest, ChatResponse, TurnStatus
from gateway.session_auth import SessionAuthenticator, SessionIdentity

log = get_logger(__name__)


def turn_language(request: ChatRequest, session: Session) -> str:
    """
    Language of the turn: the request text when there is one, otherwise the
    latest user message in the stored conversation.
    """
    if request.text:
        return detect_language(request.text)
    for msg in reversed(session.messages):
        if msg.role == Role.USER and msg.content:
            return detect_language(msg.content)
    return "en"


class ChatService:

    def __init__(
        self,
        authenticator: SessionAuthenticator,
        history: HistoryManager,
        orchestrator: Orchestrator,
        max_layers: int = MAX_LAYERS,
        max_fields_per_layer: int = MAX_FIELDS_PER_LAYER,
    ):
        self.authenticator = authenticator
        self.history = history
        self.orchestrator = orchestrator
        self.max_layers = max_layers
        self.max_fields_per_layer = max_fields_per_layer

    async def handle(
        self,
        identity: SessionIdentity,
        request: ChatRequest,
        state: Optional[Any] = None,
    ) -> ChatResponse:
        """
        Run one turn. When given, state.reply_language is set as soon as the
        session is known so error responses can match the user's language.
        """
        auth = await self.authenticator.authenticate(identity)
        session = auth.session
        bind_session(session.id)
        if state is not None:
            state.reply_language = turn_language(request, session)

        if request.is_empty:
            raise MalformedRequestError("Missing message or toolResults payload")

        t0 = time.monotonic()
        log.info(
            "chat.turn_start",
            has_text=request.text is not None,
            tool_results=len(request.toolResults),
            stored_msgs=len(session.messages),
        )

        if request.layerMetadata is not None:
            layers = normalize_layer_catalog(
                request.layerMetadata,
                max_layers=self.max_layers,
                max_fields_per_layer=self.max_fields_per_layer,
            )
            if session.merge_layer_catalog(layers):
                log.info("chat.layer_catalog_adopted", layers=len(layers or []))

        inbound: list[Message] = tool_messages_from_client(request.toolResults)
        if request.text is not None:
            inbound.append(Message.user(request.text))
        await self.history.append_and_compact(session, inbound)

        outcome = await self.orchestrator.run(session)

        self.history.append(session, outcome.new_messages)
        await self.authenticator.persist(session)

        status = (
            TurnStatus.AWAITING_CLIENT if outcome.state == LoopState.AWAITING_CLIENT
            else TurnStatus.DONE
        )
        log.info(
            "chat.turn_done",
            status=status.value,
            llm_calls=outcome.llm_calls,
            commands=len(outcome.commands),
            stored_msgs=len(session.messages),
            rotated=auth.rotated_secret is not None,
            ms=round((time.monotonic() - t0) * 1000),
        )
        return ChatResponse(
            assistantMessage=AssistantMessageOut(content=outcome.assistant_text),
            commands=outcome.commands,
            status=status,
            newMagic=auth.rotated_secret,
        )
