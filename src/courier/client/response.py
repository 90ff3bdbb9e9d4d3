"""Response decoding -- maps :class:`httpx.Response` to :class:`~courier.models.ApiResponse`.

Also derives cache lifetimes from ``Cache-Control`` response headers.
"""

from __future__ import annotations

import re
from typing import Any, Optional

import httpx

from courier.models import ApiResponse

_MAX_AGE_RE = re.compile(r"max-age=(\d+)")


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Bodies whose content type mentions JSON are decoded; everything else
    is returned as text.  Empty bodies yield ``None``.  A body that claims
    to be JSON but does not parse falls back to its text.
    """
    if not response.content:
        return None

    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


def to_api_response(response: httpx.Response) -> ApiResponse:
    """Convert an :class:`httpx.Response` into an :class:`ApiResponse`."""
    return ApiResponse(
        status_code=response.status_code,
        status_text=response.reason_phrase or "",
        headers={k.lower(): v for k, v in response.headers.items()},
        body=extract_response_data(response),
    )


def cache_ttl_from_headers(headers: dict[str, str], default_ttl: int) -> Optional[int]:
    """Return the cache TTL in milliseconds for a response.

    ``max-age=N`` wins and yields ``N * 1000``.  ``no-store``, ``no-cache``
    and ``max-age=0`` yield ``None``, meaning the response must not be
    cached (a TTL of ``0`` would mean "never expires").  Otherwise
    *default_ttl* is returned.
    """
    cache_control = headers.get("cache-control", "").lower()
    if not cache_control:
        return default_ttl

    if "no-store" in cache_control or "no-cache" in cache_control:
        return None

    match = _MAX_AGE_RE.search(cache_control)
    if match:
        max_age = int(match.group(1))
        return max_age * 1000 if max_age > 0 else None
    return default_ttl
