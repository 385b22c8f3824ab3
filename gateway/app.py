"""
gateway/app.py — HTTP Surface

FastAPI application factory. Everything the handlers need is built here
from Settings and passed down explicitly; nothing in the core reads globals.

Endpoints:
    GET  /health                 liveness
    POST /session/bootstrap      new session, sid cookie + first secret
    POST /chat                   one conversational turn
    GET  /search/google-geocode  place suggestions for the search box

Error mapping:
    SessionError           → 401, one generic message for every cause
    MalformedRequestError  → 400
    RequestValidationError → 400
    StoreError             → 503
    LLMError               → 500

Every non-401 error body is in the language of the turn: the request text,
or the latest stored user message when the request carries only tool results.

Usage:
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent.history import HistoryManager
from agent.orchestrator import Orchestrator
from brain import LLMClientFactory
from brain.llm_client import BaseLLMClient, LLMError
from config.settings import Settings
from exceptions import MalformedRequestError, SearchProviderError, SessionError, StoreError
from observability.logger import bind_session, clear_session, get_logger
from tools.capability_registry import build_default_registry
from tools.layer_catalog import normalize_layer_catalog
from tools.map_commands import MapCommandCatalog
from tools.server_capabilities import ServerCapabilities, detect_language

from gateway.chat_service import ChatService
from gateway.protocol import (
    BootstrapRequest,
    BootstrapResponse,
    ChatRequest,
    ChatResponse,
    SearchResponse,
)
from gateway.search import GoogleSearchHelper
from gateway.session_auth import SessionAuthenticator, SessionIdentity
from gateway.session_store import SessionStore, store_from_settings

log = get_logger(__name__)

SESSION_INVALID_MESSAGE = "Session invalid. Please retry."
FORBIDDEN_ORIGIN_MESSAGE = "Forbidden origin"

_LLM_FAILURE_MESSAGES = {
    "he": "אירעה שגיאה בעיבוד הבקשה. נסו שוב בעוד רגע.",
    "en": "Something went wrong while processing your request. Please try again in a moment.",
}
_MALFORMED_MESSAGES = {
    "he": "הבקשה חסרה הודעה או תוצאות כלים.",
}
_INVALID_BODY_MESSAGES = {
    "he": "גוף הבקשה אינו תקין.",
    "en": "Malformed request body",
}
_STORE_UNAVAILABLE_MESSAGES = {
    "he": "שירות השיחות אינו זמין כרגע. נסו שוב בעוד רגע.",
    "en": "Session store unavailable",
}
_SEARCH_UNCONFIGURED_MESSAGES = {
    "he": "מפתח Google Maps לא הוגדר בשרת.",
    "en": "Google Maps API key is not configured on the server",
}
_SEARCH_FAILED_MESSAGES = {
    "he": "שירות החיפוש של Google אינו זמין כרגע. נסו שוב בעוד רגע.",
}


def create_app(
    settings: Settings,
    llm_client: Optional[BaseLLMClient] = None,
    store: Optional[SessionStore] = None,
    server_caps: Optional[ServerCapabilities] = None,
    search_http: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """
    Build the app. Injected collaborators replace the ones Settings would
    create (tests pass stubs for the LLM, store and HTTP transports).
    """
    llm_client = llm_client or LLMClientFactory.from_settings(settings)
    store = store or store_from_settings(settings)
    server_caps = server_caps or ServerCapabilities(
        google_key=settings.google_key,
        tavily_key=settings.tavily_api_key,
    )

    registry = build_default_registry(server_caps, MapCommandCatalog())
    orchestrator = Orchestrator.from_settings(settings, llm_client, registry)
    history = HistoryManager(
        llm_client,
        LLMClientFactory.request_config(settings),
        history_limit=settings.history.history_limit,
        summary_threshold=settings.history.summary_threshold,
        summary_keep_recent=settings.history.summary_keep_recent,
    )
    authenticator = SessionAuthenticator(
        store,
        ttl_seconds=settings.session.ttl_seconds,
        secret_lifetime_seconds=settings.session.secret_lifetime_seconds,
        clock=clock,
    )
    chat_service = ChatService(
        authenticator,
        history,
        orchestrator,
        max_layers=settings.catalog.max_layers,
        max_fields_per_layer=settings.catalog.max_fields_per_layer,
    )
    search = GoogleSearchHelper(settings.google_key, http=search_http)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(
            "app.started",
            capabilities=registry.list_names(),
            store=type(store).__name__,
            model=settings.llm.model,
        )
        yield
        await search.aclose()
        await server_caps.aclose()
        await store.aclose()
        log.info("app.stopped")

    app = FastAPI(title="govmap-agent", version=settings.agent.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.authenticator = authenticator
    app.state.chat_service = chat_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.server.frontend_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", settings.session.secret_header],
        expose_headers=[],
    )
    _register_error_handlers(app)

    def identity(request: Request) -> SessionIdentity:
        return SessionIdentity(
            session_id=request.cookies.get(settings.session.cookie_name),
            secret=request.headers.get(settings.session.secret_header),
        )

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    @app.post("/session/bootstrap")
    async def bootstrap(request: Request):
        origin = request.headers.get("origin")
        if origin != settings.server.frontend_origin:
            log.warning("http.bootstrap_forbidden", origin=origin)
            return JSONResponse(status_code=403, content={"error": FORBIDDEN_ORIGIN_MESSAGE})

        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        body = BootstrapRequest.model_validate(payload if isinstance(payload, dict) else {})
        layers = normalize_layer_catalog(
            body.raw_catalog(),
            max_layers=settings.catalog.max_layers,
            max_fields_per_layer=settings.catalog.max_fields_per_layer,
        )

        session = await authenticator.bootstrap(layers)
        response = JSONResponse(content=BootstrapResponse(magic=session.secret).model_dump())
        response.set_cookie(
            key=settings.session.cookie_name,
            value=session.id,
            max_age=settings.session.cookie_max_age_seconds,
            httponly=True,
            secure=settings.server.production,
            samesite="strict",
        )
        return response

    @app.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
    async def chat(
        body: ChatRequest,
        request: Request,
        who: SessionIdentity = Depends(identity),
    ) -> ChatResponse:
        request.state.reply_language = detect_language(body.text or "")
        try:
            return await chat_service.handle(who, body, state=request.state)
        finally:
            clear_session()

    @app.get(
        "/search/google-geocode",
        response_model=SearchResponse,
        response_model_exclude_none=True,
    )
    async def google_geocode_search(
        request: Request,
        q: Optional[str] = None,
        query: Optional[str] = None,
        who: SessionIdentity = Depends(identity),
    ):
        text = (q if q is not None else query or "").strip()
        request.state.reply_language = detect_language(text)
        try:
            auth = await authenticator.authenticate(who)
            bind_session(auth.session.id)

            if not text:
                await authenticator.persist(auth.session)
                return SearchResponse(newMagic=auth.rotated_secret)

            if not search.configured:
                await authenticator.persist(auth.session)
                log.warning("search.unconfigured")
                return JSONResponse(
                    status_code=503,
                    content=SearchResponse(
                        error=_localized(_SEARCH_UNCONFIGURED_MESSAGES, request.state.reply_language),
                        newMagic=auth.rotated_secret,
                    ).model_dump(exclude_none=True),
                )

            try:
                suggestions, error = await search.suggest(text)
            except SearchProviderError as e:
                return JSONResponse(
                    status_code=e.status_code,
                    content=SearchResponse(
                        error=_SEARCH_FAILED_MESSAGES.get(request.state.reply_language, str(e)),
                    ).model_dump(exclude_none=True),
                )

            await authenticator.persist(auth.session)
            return SearchResponse(suggestions=suggestions, newMagic=auth.rotated_secret, error=error)
        finally:
            clear_session()

    return app


# ─────────────────────────────────────────────────────────────────────────────
# Error handlers
# ─────────────────────────────────────────────────────────────────────────────


async def _session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
    # Same body for every cause, so callers can't tell which ids exist
    return JSONResponse(status_code=401, content={"error": SESSION_INVALID_MESSAGE})


async def _malformed_request_handler(request: Request, exc: MalformedRequestError) -> JSONResponse:
    log.info("http.malformed_request", path=request.url.path, error=str(exc))
    message = _MALFORMED_MESSAGES.get(_reply_language(request), str(exc))
    return JSONResponse(status_code=400, content={"error": message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    log.info("http.invalid_body", path=request.url.path, errors=len(exc.errors()))
    # The route never ran, so the only language hint is the raw body
    text = exc.body.get("text") if isinstance(exc.body, dict) else None
    language = detect_language(text) if isinstance(text, str) else "en"
    return JSONResponse(status_code=400, content={"error": _localized(_INVALID_BODY_MESSAGES, language)})


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    log.error("http.store_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"error": _localized(_STORE_UNAVAILABLE_MESSAGES, _reply_language(request))},
    )


async def _llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    log.error(
        "http.reasoning_engine_failed",
        path=request.url.path,
        provider=exc.provider,
        status_code=exc.status_code,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={"error": _localized(_LLM_FAILURE_MESSAGES, _reply_language(request))},
    )


def _register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SessionError, _session_error_handler)
    app.add_exception_handler(MalformedRequestError, _malformed_request_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(LLMError, _llm_error_handler)
