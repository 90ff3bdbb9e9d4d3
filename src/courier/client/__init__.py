"""HTTP client module for courier.

Provides :class:`RequestEngine`, an asynchronous client that wraps
:class:`httpx.AsyncClient` with auth injection, interceptors, validation,
response caching, and retry with exponential backoff.

Example::

    from courier.client import create_client
    from courier.config import load_settings

    async with create_client(load_settings()) as engine:
        resp = await engine.get("/users")
"""

from courier.client.engine import RequestEngine, build_cache, create_client
from courier.client.interceptors import RequestInterceptor, ResponseInterceptor

__all__ = [
    "RequestEngine",
    "RequestInterceptor",
    "ResponseInterceptor",
    "build_cache",
    "create_client",
]
