"""HTTP proxy server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState in the Starlette lifespan
- Serve /summarize and /chat in front of the remote model
- Start uvicorn
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from pagebrief import __version__
from pagebrief.config import Settings
from pagebrief.conversation import ConversationStore
from pagebrief.errors import ErrorCode
from pagebrief.gateway import ChatGateway, ModelSummaryBackend, SummarizationGateway
from pagebrief.models.api import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    SummarizeRequest,
    SummarizeResponse,
)
from pagebrief.models.outcomes import Failure
from pagebrief.provider import build_http_client, build_provider
from pagebrief.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

log = structlog.get_logger()

CONVERSATION_ID_HEADER = "x-conversation-id"


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


def build_state(settings: Settings) -> AppState:
    http_client = build_http_client(settings.provider.timeout_seconds)
    provider = build_provider(http_client, settings.provider)
    conversations = ConversationStore(
        ttl_seconds=settings.conversation.ttl_minutes * 60,
        history_turns=settings.conversation.history_turns,
    )
    return AppState(
        settings=settings,
        summarizer=SummarizationGateway(ModelSummaryBackend(provider), settings.summarizer),
        chat=ChatGateway(provider, conversations),
        conversations=conversations,
        http_client=http_client,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code)


async def _json_body(request: Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


async def summarize(request: Request) -> JSONResponse:
    state: AppState = request.app.state.pagebrief
    body = await _json_body(request)
    try:
        validated = SummarizeRequest.model_validate(body or {})
    except ValidationError:
        log.info("request_rejected", route="/summarize", code=ErrorCode.INVALID_INPUT)
        return _error(400, "Text too short for summarization")

    outcome = await state.summarizer.summarize(validated.text)
    if isinstance(outcome, Failure):
        if outcome.is_client_error:
            return _error(400, outcome.message)
        log.warning(
            "request_failed", route="/summarize", code=outcome.code, status=outcome.status
        )
        return _error(500, "Summarization failed", outcome.message)

    return JSONResponse(SummarizeResponse(summary=outcome.summary).model_dump())


async def chat(request: Request) -> JSONResponse:
    state: AppState = request.app.state.pagebrief
    body = await _json_body(request)
    try:
        validated = ChatRequest.model_validate(body or {})
    except ValidationError:
        log.info("request_rejected", route="/chat", code=ErrorCode.INVALID_INPUT)
        return _error(400, "Question is required")

    conversation_id = request.headers.get(CONVERSATION_ID_HEADER) or None
    outcome = await state.chat.ask(validated.question, validated.context, conversation_id)
    if isinstance(outcome, Failure):
        log.warning("request_failed", route="/chat", code=outcome.code, status=outcome.status)
        return _error(500, "Chat failed", outcome.message)

    response = ChatResponse(response=outcome.response, conversation_id=outcome.conversation_id)
    return JSONResponse(response.model_dump(by_alias=True))


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": __version__})


async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("request_unexpected_error", route=request.url.path, exc_info=exc)
    return _error(500, "Internal server error", type(exc).__name__)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, state: AppState | None = None) -> Starlette:
    """Build the ASGI app.

    A pre-built ``state`` is attached immediately, which lets tests drive the
    app through ``httpx.ASGITransport`` without running the lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        if getattr(app.state, "pagebrief", None) is not None:
            yield
            return

        app_settings = settings or Settings()
        setup_logging(app_settings)
        app.state.pagebrief = build_state(app_settings)
        log.info(
            "server_started",
            version=__version__,
            dev_mode=app_settings.provider.dev_mode,
            model=app_settings.provider.model,
        )
        try:
            yield
        finally:
            app_state: AppState = app.state.pagebrief
            app_state.conversations.close()
            if app_state.http_client is not None:
                await app_state.http_client.aclose()
            log.info("server_stopping")

    app = Starlette(
        routes=[
            Route("/summarize", summarize, methods=["POST"]),
            Route("/chat", chat, methods=["POST"]),
            Route("/health", health, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
            )
        ],
        exception_handlers={Exception: unexpected_error},
        lifespan=lifespan,
    )
    app.state.pagebrief = state
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    setup_logging(settings)

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
