"""
aiohttp transport for the Commandless relay.

Both helpers convert every failure (non-2xx status, timeout, connection error,
undecodable body) into an ``HttpResponse`` with ``ok=False`` instead of raising,
so callers decide whether a failure is fatal.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from commandless.datatypes.relay_datatypes import HttpResponse
from commandless.relay.signing import hmac_sign, now_unix_ms

DEFAULT_TIMEOUT_SECONDS = 15.0


async def _read_error_text(response: aiohttp.ClientResponse) -> str:
    try:
        return await response.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return ""


async def post_json(
    session: aiohttp.ClientSession,
    url: str,
    api_key: str,
    body: Any,
    *,
    hmac_secret: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    idempotency_key: Optional[str] = None,
) -> HttpResponse[Any]:
    """
    POST a JSON body to the relay.

    Args:
        session: Shared aiohttp session.
        url: Absolute endpoint URL.
        api_key: Sent as ``x-commandless-key``.
        body: JSON-serializable request body.
        hmac_secret: When set, ``x-signature`` carries the hex HMAC-SHA256 of the body.
        timeout: Total request timeout in seconds.
        idempotency_key: Optional ``x-idempotency-key`` header value.

    Returns:
        HttpResponse: Decoded JSON in ``data`` on success, error text otherwise.
    """
    payload = json.dumps(body)
    headers: Dict[str, str] = {
        "content-type": "application/json",
        "x-commandless-key": api_key,
        "x-timestamp": str(now_unix_ms()),
    }
    if hmac_secret:
        headers["x-signature"] = hmac_sign(payload, hmac_secret)
    if idempotency_key:
        headers["x-idempotency-key"] = idempotency_key

    try:
        async with session.post(
            url, data=payload, headers=headers, timeout=aiohttp.ClientTimeout(total=timeout)
        ) as response:
            request_id = response.headers.get("x-request-id")
            if not 200 <= response.status < 300:
                return HttpResponse(
                    ok=False, status=response.status, error=await _read_error_text(response), request_id=request_id
                )
            data = await response.json(content_type=None)
            return HttpResponse(ok=True, status=response.status, data=data, request_id=request_id)
    except asyncio.CancelledError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        return HttpResponse(ok=False, status=0, error=str(exc) or type(exc).__name__)


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    headers: Dict[str, str],
    *,
    params: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> HttpResponse[Any]:
    """GET a JSON document; same failure contract as :func:`post_json`."""
    try:
        async with session.get(
            url, headers=headers, params=params, timeout=aiohttp.ClientTimeout(total=timeout)
        ) as response:
            request_id = response.headers.get("x-request-id")
            if not 200 <= response.status < 300:
                return HttpResponse(
                    ok=False, status=response.status, error=await _read_error_text(response), request_id=request_id
                )
            data = await response.json(content_type=None)
            return HttpResponse(ok=True, status=response.status, data=data, request_id=request_id)
    except asyncio.CancelledError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        return HttpResponse(ok=False, status=0, error=str(exc) or type(exc).__name__)
