"""Tracing utilities with optional Langfuse integration.

By default this module provides a lightweight span context manager that
records nothing (no-op). Once ``configure_tracing`` is called with
settings where ``LANGFUSE_ENABLED=true`` and both Langfuse keys are set,
spans are forwarded to Langfuse. Errors in tracing never affect
application logic; we fail-soft to a no-op.

This module also exposes lightweight helpers for observability events
(`log_event`) and crude token estimation (`estimate_tokens`).
"""

import contextvars
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from langfuse import Langfuse

from shared.settings import Settings


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Span:
    """A no‑op span used when tracing is disabled."""

    def __init__(self, name: str, **kwargs: Any) -> None:
        self.name = name

    def __enter__(self) -> "_Span":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


_current_trace = contextvars.ContextVar("arco.current_trace", default=None)


class Tracer:
    """Tracer facade with pluggable backends (no-op or Langfuse)."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._client = None
        self._trace_name = "arco-trace"
        if settings is None:
            return
        self._trace_name = settings.trace_name
        backend = settings.tracing_backend.lower()
        if not (settings.langfuse_enabled and backend == "langfuse"):
            return
        public_key = settings.langfuse_public_key
        secret_key = settings.langfuse_secret_key
        if not (public_key and secret_key):
            return
        try:
            self._client = Langfuse(
                public_key=public_key,
                secret_key=secret_key,
                host=settings.langfuse_host or None,
            )
        except Exception as e:
            print(f"[tracing] Langfuse disabled: {e}")
            self._client = None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def start_trace(self, name: str, input: Optional[dict] = None):
        if self._client is None:
            return None
        try:
            tr = self._client.trace(name=name, input=input or {})
            _current_trace.set(tr)
            return tr
        except Exception:
            return None

    def end_trace(self, output: Optional[dict] = None):
        tr = _current_trace.get()
        if tr is not None and hasattr(tr, "update"):
            try:
                tr.update(output=output or {})
            except Exception:
                pass
        _current_trace.set(None)

    def start_span(self, name: str, **kwargs: Any) -> _Span:
        if self._client is None:
            return _Span(name, **kwargs)
        return _LangfuseSpan(
            self._client,
            name,
            parent_trace=_current_trace.get(),
            trace_name=self._trace_name,
            **kwargs,
        )


tracer = Tracer()


def configure_tracing(settings: Settings) -> Tracer:
    """Swap the module tracer for one built from ``settings``."""
    global tracer
    tracer = Tracer(settings)
    return tracer


def install_fastapi_tracing(app, service_name: str = "arco-backend") -> None:
    """Install middleware to auto-create a trace per HTTP request."""
    from fastapi import Request

    @app.middleware("http")
    async def _trace_middleware(request: Request, call_next: Callable):
        # Keep the trace input small: no headers or body
        route_path = request.url.path
        tracer.start_trace(
            name=f"{service_name} {request.method} {route_path}",
            input={
                "method": request.method,
                "path": route_path,
                "query": str(request.url.query) if request.url.query else "",
            },
        )
        response = None
        try:
            with span("http.request"):
                response = await call_next(request)
            return response
        except Exception as e:
            with span("http.error", error=str(e)):
                pass
            raise
        finally:
            tracer.end_trace(
                output={"status": getattr(response, "status_code", None)}
            )


@contextmanager
def span(name: str, **kwargs: Any) -> Iterator[_Span]:
    """Context manager wrapper around the tracer's start_span method.

    Usage:
        with span("chat.retrieve", top_k=8):
            # do work
    """
    s = tracer.start_span(name, **kwargs)
    s.__enter__()
    error: Optional[BaseException] = None
    try:
        yield s
    except BaseException as e:
        error = e
        raise
    finally:
        s.__exit__(type(error) if error else None, error, None)


class _LangfuseSpan(_Span):  # pragma: no cover - needs a Langfuse server
    def __init__(
        self,
        client: Any,
        name: str,
        parent_trace: Any | None = None,
        trace_name: str = "arco-trace",
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self._client = client
        self._trace = parent_trace
        self._trace_name = trace_name
        self._span = None
        self._start_ms = _now_ms()
        self._kwargs = kwargs

    def __enter__(self) -> "_LangfuseSpan":
        try:
            # Spans outside a request still get a lightweight trace of their own
            if self._trace is None:
                self._trace = self._client.trace(name=self._trace_name)
            self._span = self._trace.span(name=self.name, input=self._kwargs)
        except Exception:
            self._trace = None
            self._span = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._span is None:
            return None
        try:
            self._span.end(
                output={
                    "error": str(exc) if exc else None,
                    "duration_ms": max(1, _now_ms() - self._start_ms),
                }
            )
        except Exception:
            pass
        return None


def log_event(
    name: str, payload: Optional[dict] = None, correlation_id: Optional[str] = None
) -> None:
    """Emit a short-lived structured event span for observability.

    Args:
        name: Logical event name, e.g. "Retrieval", "Generation", "Fallback".
        payload: Arbitrary JSON-serializable dict with event data.
        correlation_id: Optional ID to stitch events of one request together.
    """
    meta = dict(payload or {})
    if correlation_id:
        meta["correlation_id"] = correlation_id
    with span(f"event.{name}", **meta):
        pass


def estimate_tokens(text: str) -> int:
    """Very rough subword token estimate (for logging only)."""
    if not text:
        return 0
    # Approximate: 1 token ~= 4 chars
    return max(1, int(len(text) / 4))
