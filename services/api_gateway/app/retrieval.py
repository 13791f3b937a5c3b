"""Client for the external document-retrieval proxy.

The proxy performs the actual search; this module only decides which
parameters to send (request overrides vs. configured defaults) and
parses what comes back.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional

import httpx

from shared.models import DEFAULT_FILE_TYPES, ChatRequest, RetrieveRequest, RetrieveResponse
from shared.settings import Settings

from .upstream import fetch_json


def resolve_path_prefix(requested: Optional[str], default: str) -> Optional[str]:
    """Request prefix if non-blank, else the default; None means global search."""
    if requested is not None and requested.strip():
        return requested.strip()
    return (default or "").strip() or None


def resolve_top_k(requested: Any, default: int) -> int:
    if requested is None or isinstance(requested, bool):
        return default
    try:
        value = float(requested)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or int(value) < 1:
        return default
    return int(value)


def resolve_file_types(requested: Any) -> List[str]:
    if isinstance(requested, list) and requested:
        return [str(t) for t in requested]
    return list(DEFAULT_FILE_TYPES)


def build_retrieve_request(request: ChatRequest, settings: Settings) -> RetrieveRequest:
    return RetrieveRequest(
        query=request.query,
        path_prefix=resolve_path_prefix(request.path_prefix, settings.default_path_prefix),
        top_k=resolve_top_k(request.top_k, settings.top_k_default),
        max_chars_per_chunk=settings.max_chars_per_chunk,
        file_types=resolve_file_types(request.file_types),
        include_file_text=False,
    )


class RetrievalClient:
    """Calls ``POST {PROXY_BASE_URL}/retrieve`` with the proxy API key."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._http = http_client
        self._url = settings.retrieve_url
        self._api_key = settings.proxy_api_key
        self._timeout = settings.retrieval_timeout_seconds

    async def retrieve(self, req: RetrieveRequest) -> RetrieveResponse:
        # UpstreamError propagates unchanged; the router maps it to a response
        data = await fetch_json(
            self._http,
            "POST",
            self._url,
            headers={"x-api-key": self._api_key},
            json_body=req.to_payload(),
            timeout=self._timeout,
        )
        return RetrieveResponse.from_payload(data)
