"""FastAPI app factory."""

from __future__ import annotations

import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from app.config import NETLIFY_EMAIL_PATH, VERCEL_EMAIL_PATH, settings
from app.errors import (
    CompositionError,
    DecodingError,
    EncodingError,
    ExactishError,
    RefinementError,
    RelayError,
    RunInProgressError,
    ValidationError,
)

load_dotenv()

logging.basicConfig(
    level=getattr(logging, settings.exactish_log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[ExactishError], int]] = [
    (RunInProgressError, 409),
    (ValidationError, 400),
    (EncodingError, 400),
    (DecodingError, 400),
    (CompositionError, 409),
    (RefinementError, 502),
    (RelayError, 502),
]


async def _exactish_error_handler(request: Request, exc: ExactishError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    logger.info("%s %s → %d: %s", request.method, request.url.path, status, exc.summary)
    return JSONResponse({"error": exc.summary, "detail": exc.detail}, status_code=status)


async def _permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
    return JSONResponse({"error": str(exc), "detail": None}, status_code=403)


class ScopedCORSMiddleware:
    """``cors_origins`` for the service routes; any origin on ``open_paths`` (the email relay)."""

    def __init__(self, app: ASGIApp, allow_origins: list[str], open_paths: frozenset[str]) -> None:
        self.open_paths = open_paths
        self.scoped = CORSMiddleware(
            app,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self.open = CORSMiddleware(
            app,
            allow_origins=["*"],
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["Content-Type"],
            max_age=86400,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] in self.open_paths:
            await self.open(scope, receive, send)
        else:
            await self.scoped(scope, receive, send)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Exactish",
        description="Iterative image replication through a Langflow workflow, with GIF/video export",
        version="0.1.0",
    )

    app.add_middleware(
        ScopedCORSMiddleware,
        allow_origins=settings.cors_origins,
        open_paths=frozenset({VERCEL_EMAIL_PATH, NETLIFY_EMAIL_PATH}),
    )

    app.add_exception_handler(ExactishError, _exactish_error_handler)
    app.add_exception_handler(PermissionError, _permission_error_handler)

    from app.api.router import api_router, netlify_router

    app.include_router(api_router)
    app.include_router(netlify_router)

    return app


app = create_app()
