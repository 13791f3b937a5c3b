"""API gateway for the ARCO backend.

This service exposes a small REST interface and hides the document
retrieval proxy and the language-model provider behind one endpoint:

- GET `/`: service banner.
- GET `/health`: liveness check.
- POST `/chat`: retrieve snippets, ask the model, return answer + sources.

The app is built by ``create_app`` from an immutable Settings object.
Tests pass their own HTTP client (``httpx.MockTransport``) and a fake
completion client; in production both are created here from settings.

Run locally:
    arco-backend
    # or: uvicorn services.api_gateway.app.main:create_app --factory --port 4000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from services.llm_generate.app.completion import CompletionClient, build_completion_client
from shared.models import ErrorResponse, HealthResponse, ServiceInfo
from shared.settings import Settings, load_settings
from shared.tracing import configure_tracing, install_fastapi_tracing

from .routers import chat
from .upstream import UpstreamError

QUERY_ERROR = 'Falta "query" (string)'


def _error(status: int, error: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=error, status=status, details=details)
    return JSONResponse(status_code=status, content=jsonable_encoder(body))


def _is_query_error(err: dict) -> bool:
    loc = tuple(err.get("loc") or ())
    return loc == ("body",) or loc[:2] == ("body", "query")


def _install_error_handlers(app: FastAPI, service_name: str) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = QUERY_ERROR if any(_is_query_error(e) for e in errors) else "Solicitud inválida"
        return _error(400, message, jsonable_encoder(errors))

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request: Request, exc: UpstreamError):
        status = exc.status or 500
        print(f"[{service_name}] {request.url.path} error", status, str(exc), exc.data or "")
        return _error(status, str(exc), exc.data)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    # ---------- Global safety net: never crash the worker ----------
    # Starlette runs this handler in ServerErrorMiddleware, outside
    # CORSMiddleware, so these 500 responses carry no CORS headers.
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        print(f"[{service_name}] {request.url.path} error 500", repr(exc))
        return _error(500, str(exc) or exc.__class__.__name__)


class BodySizeLimitMiddleware:
    """Counts streamed request bytes so bodies without Content-Length
    (chunked uploads) hit the same limit as declared ones."""

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    # Raised inside the route's body read: rendered by the
                    # HTTPException handler as a 413 envelope
                    raise HTTPException(413, f"Body larger than {self.max_bytes} bytes")
            return message

        await self.app(scope, limited_receive, send)


def create_app(
    settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    completion_client: Optional[CompletionClient] = None,
) -> FastAPI:
    s = settings or load_settings()
    configure_tracing(s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = app.state.http_client is None
        if owns_client:
            # Per-phase limits no tighter than the total bound in fetch_json
            app.state.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(s.retrieval_timeout_seconds),
                follow_redirects=True,
            )
        print(
            f"[{s.service_name}] Upstreams:",
            {"retrieve": s.retrieve_url, "llm": f"{s.llm_provider}"},
        )
        try:
            yield
        finally:
            if owns_client:
                await app.state.http_client.aclose()
                app.state.http_client = None

    app = FastAPI(title="ARCO Backend", version="1.0.0", lifespan=lifespan)
    app.state.settings = s
    app.state.http_client = http_client
    app.state.completion_client = completion_client or build_completion_client(s)

    install_fastapi_tracing(app, service_name=s.service_name)
    _install_error_handlers(app, s.service_name)

    @app.middleware("http")
    async def _limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > s.max_body_bytes:
            return _error(413, f"Body larger than {s.max_body_bytes} bytes")
        return await call_next(request)

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=s.max_body_bytes)

    origins = s.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_model=ServiceInfo)
    def _root():
        return ServiceInfo(service=s.service_name)

    @app.get("/health", response_model=HealthResponse)
    def _health():
        return HealthResponse()

    app.include_router(chat.router, tags=["chat"])
    return app


def run() -> None:
    """Console entry point: load settings (exit on error) and serve."""
    settings = load_settings()
    app = create_app(settings)
    print(f"ARCO backend running on http://localhost:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
