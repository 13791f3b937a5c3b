"""Outbound JSON calls from the gateway to upstream services.

``fetch_json`` is the single place where the gateway talks HTTP to
another service. It bounds the whole call by a timeout (the in-flight
request is cancelled on expiry), parses the JSON body and turns
non-2xx statuses and transport failures into ``UpstreamError`` so the
router can map them onto an error envelope.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import httpx


class UpstreamError(Exception):
    """An upstream call failed.

    Attributes:
        status: HTTP status returned by the upstream, or None when the call
            never produced a response (timeout, connection error).
        data: Parsed error body from the upstream as an object, or None.
            Non-object bodies (plain text, JSON arrays or scalars) are
            wrapped as ``{"body": ...}``.
    """

    def __init__(
        self, message: str, status: Optional[int] = None, data: Any = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.data = data


def _error_body(response: httpx.Response) -> Optional[Dict[str, Any]]:
    raw = response.text
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {"body": raw[:500]}
    return parsed if isinstance(parsed, dict) else {"body": parsed}


async def fetch_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    json_body: Any = None,
    timeout: float = 25.0,
) -> Any:
    """Perform one HTTP call and return the parsed JSON body.

    Returns ``{}`` for an empty 2xx body. Raises ``UpstreamError`` on
    timeout, transport failure or non-2xx status. A 2xx body that is not
    valid JSON raises ``json.JSONDecodeError``.
    """
    content = None
    request_headers = dict(headers or {})
    if json_body is not None:
        content = json.dumps(json_body, ensure_ascii=False).encode("utf-8")
        request_headers.setdefault("Content-Type", "application/json")

    try:
        response = await asyncio.wait_for(
            client.request(
                method,
                url,
                headers=request_headers,
                content=content,
                follow_redirects=True,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        raise UpstreamError(f"Timeout after {timeout:g}s calling {url}")
    except httpx.TimeoutException:
        raise UpstreamError(f"Timeout calling {url}")
    except httpx.HTTPError as e:
        raise UpstreamError(f"{method} {url} failed: {e}")

    if not response.is_success:
        raise UpstreamError(
            f"HTTP {response.status_code}",
            status=response.status_code,
            data=_error_body(response),
        )

    raw = response.text
    return json.loads(raw) if raw else {}
