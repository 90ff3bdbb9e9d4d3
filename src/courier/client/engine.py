"""Asynchronous request engine with auth, interceptors, cache, and retry.

This module provides :class:`RequestEngine`, the single execution path for
every HTTP call made through courier.  It wraps :class:`httpx.AsyncClient`
and layers on:

- **Auth injection** -- headers from the injected
  :class:`~courier.auth.base.AuthStrategy` are merged into every request.
- **Interceptors** -- request and response interceptors run in
  registration order (see :mod:`courier.client.interceptors`).
- **Validation** -- malformed requests are rejected before any I/O.
- **Response caching** -- GET responses are served from and written to a
  :class:`~courier.cache.CacheStrategy`.
- **Retry with backoff** -- timeouts, network errors, 429 and 5xx are
  retried with exponential delay (1 s, 2 s, 4 s, ...).

The order of a single :meth:`RequestEngine.request` call is fixed:
request interceptors, validation, cache lookup, dispatch (with retries),
response interceptors, cache write.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from courier import __version__
from courier.auth.base import AuthStrategy, NoAuth
from courier.auth.manager import create_auth_strategy
from courier.auth.token_manager import TokenManager
from courier.cache import CacheEntry, CacheKey, CacheStrategy, DiskCache, InMemoryCache, NoOpCache, now_ms
from courier.client.interceptors import RequestInterceptor, ResponseInterceptor
from courier.client.response import cache_ttl_from_headers, to_api_response
from courier.config import get_cache_dir
from courier.exceptions import (
    CourierError,
    HttpError,
    NetworkError,
    TimeoutError_,
    ValidationError,
    is_retryable,
)
from courier.models import ApiResponse, CacheConfig, ClientSettings, HTTPMethod, RequestConfig

logger = logging.getLogger(__name__)

_DEFAULT_CACHE_SIZE = 100


def merge_headers(*layers: dict[str, str]) -> dict[str, str]:
    """Merge header dicts left to right, matching names case-insensitively.

    A later layer replaces any earlier header with the same name regardless
    of casing, and its own spelling of the name is kept.
    """
    merged: dict[str, str] = {}
    for layer in layers:
        for name, value in layer.items():
            for existing in [key for key in merged if key.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value
    return merged


class RequestEngine:
    """Asynchronous HTTP client core.

    Args:
        base_url: Root URL every endpoint is appended to.  A trailing
            slash is stripped.
        auth: Authentication strategy.  Defaults to
            :class:`~courier.auth.base.NoAuth`.
        timeout: Per-attempt timeout in seconds.
        max_retries: Retry attempts after the first, for retryable errors.
        retry_delay: Base backoff delay in seconds, doubled per attempt.
        cache: Response cache.  Defaults to :class:`~courier.cache.NoOpCache`.
        cache_ttl: Default cache TTL in milliseconds (``0`` = never expires).
        respect_cache_headers: Derive TTL from ``Cache-Control`` when present.
        default_headers: Extra default headers, merged over the built-in
            ``Content-Type`` and ``User-Agent``.
        transport: Optional :mod:`httpx` transport (tests use
            :class:`httpx.MockTransport`).

    Example::

        async with RequestEngine("https://api.example.com/", auth=ApiKeyAuth("k")) as engine:
            response = await engine.get("/users", params={"page": 1})
    """

    def __init__(
        self,
        base_url: str,
        auth: Optional[AuthStrategy] = None,
        *,
        timeout: float = 5.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        cache: Optional[CacheStrategy] = None,
        cache_ttl: int = 300_000,
        respect_cache_headers: bool = True,
        default_headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth or NoAuth()
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._cache: CacheStrategy = cache or NoOpCache()
        self._cache_ttl = cache_ttl
        self._respect_cache_headers = respect_cache_headers
        self._default_headers = merge_headers(
            {"Content-Type": "application/json", "User-Agent": f"courier/{__version__}"},
            default_headers or {},
        )
        self._request_interceptors: list[RequestInterceptor] = []
        self._response_interceptors: list[ResponseInterceptor] = []
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager / lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> RequestEngine:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient` and release the cache."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._cache.close()

    @property
    def http(self) -> httpx.AsyncClient:
        """The underlying :class:`httpx.AsyncClient`, created on first use.

        Auth strategies use it for calls that must bypass the engine
        pipeline, such as token refresh against an identity provider.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, follow_redirects=True)
        return self._client

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def default_headers(self) -> dict[str, str]:
        return dict(self._default_headers)

    @property
    def auth(self) -> AuthStrategy:
        return self._auth

    @property
    def cache(self) -> CacheStrategy:
        return self._cache

    @property
    def cache_enabled(self) -> bool:
        return not isinstance(self._cache, NoOpCache)

    def set_base_url(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    def set_timeout(self, timeout: float) -> None:
        self._timeout = timeout

    def set_default_headers(self, headers: dict[str, str]) -> None:
        """Merge *headers* into the default headers.  Per-request headers still win."""
        self._default_headers = merge_headers(self._default_headers, headers)

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> None:
        self._request_interceptors.append(interceptor)

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> None:
        self._response_interceptors.append(interceptor)

    # ------------------------------------------------------------------ #
    # Auth delegation
    # ------------------------------------------------------------------ #

    async def authenticate(self) -> None:
        await self._auth.authenticate(self)

    def is_authenticated(self) -> bool:
        return self._auth.is_authenticated()

    def get_auth_headers(self) -> dict[str, str]:
        return self._auth.get_auth_headers()

    async def refresh_auth(self) -> None:
        await self._auth.refresh_auth(self)

    # ------------------------------------------------------------------ #
    # Request building
    # ------------------------------------------------------------------ #

    def build_url(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> str:
        """Join the base URL, *endpoint* and a query string built from *params*.

        ``None`` values are dropped.  Booleans are rendered lowercase and
        sequences become repeated keys.
        """
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        url = f"{self._base_url}{path}"
        if not params:
            return url

        query: list[tuple[str, Any]] = []
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = str(value).lower()
            query.append((key, value))
        if not query:
            return url
        return f"{url}?{urlencode(query, doseq=True)}"

    def build_request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> RequestConfig:
        """Build a :class:`~courier.models.RequestConfig` for *endpoint*.

        Raises:
            ValidationError: If *method* is not a supported HTTP method.
        """
        try:
            http_method = HTTPMethod(method.upper())
        except ValueError as exc:
            raise ValidationError(f"Unsupported HTTP method '{method}'") from exc
        return RequestConfig(
            method=http_method,
            url=self.build_url(endpoint, params),
            headers=dict(headers or {}),
            params=params,
            body=body,
            timeout=self._timeout if timeout is None else timeout,
        )

    def validate_request(self, config: RequestConfig) -> None:
        """Reject malformed requests before any I/O.

        Raises:
            ValidationError: If the URL is empty, the method is missing, or
                the timeout is not positive.
        """
        if not config.url:
            raise ValidationError("URL is required")
        if config.method is None:
            raise ValidationError("HTTP method is required")
        if config.timeout is None or config.timeout <= 0:
            raise ValidationError("Timeout must be positive")

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(self, config: RequestConfig, use_cache: bool = True) -> ApiResponse:
        """Execute *config* through the full pipeline.

        Args:
            config: The request.  Its headers are merged over the default
                and auth headers.
            use_cache: Set to ``False`` to bypass the cache for this call.

        Returns:
            The decoded :class:`~courier.models.ApiResponse`.

        Raises:
            ValidationError: For malformed requests; nothing is sent.
            HttpError: On non-2xx responses (after retries for 429 / 5xx).
            NetworkError: On transport failures after all retries.
            TimeoutError_: On timeouts after all retries.
            AuthenticationError: If a proactive token refresh fails.
        """
        await self._auth.prepare(self)

        headers = merge_headers(self._default_headers, self._auth.get_auth_headers(), config.headers)
        config = config.model_copy(update={"headers": headers})
        config = await self._run_request_interceptors(config)

        self.validate_request(config)

        cache_key: Optional[CacheKey] = None
        if use_cache and config.method == HTTPMethod.GET and self.cache_enabled:
            cache_key = self._make_cache_key(config)
            entry = self._cache.get(cache_key)
            if entry is not None:
                logger.debug("Cache hit: %s %s", config.method.value, config.url)
                return entry.data

        try:
            response = await self._execute_with_retry(config)
            response = await self._run_response_interceptors(response)
        except Exception as exc:
            recovered = await self._recover(exc)
            if recovered is None:
                raise
            return recovered

        if cache_key is not None:
            self._cache_store(cache_key, response)
        return response

    async def get(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        use_cache: bool = True,
    ) -> ApiResponse:
        config = self.build_request("GET", endpoint, params=params, headers=headers)
        return await self.request(config, use_cache=use_cache)

    async def post(
        self,
        endpoint: str,
        body: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> ApiResponse:
        return await self.request(self.build_request("POST", endpoint, body, params, headers))

    async def put(
        self,
        endpoint: str,
        body: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> ApiResponse:
        return await self.request(self.build_request("PUT", endpoint, body, params, headers))

    async def patch(
        self,
        endpoint: str,
        body: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> ApiResponse:
        return await self.request(self.build_request("PATCH", endpoint, body, params, headers))

    async def delete(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> ApiResponse:
        return await self.request(self.build_request("DELETE", endpoint, None, params, headers))

    # ------------------------------------------------------------------ #
    # Cache control
    # ------------------------------------------------------------------ #

    def clear_cache(self) -> None:
        self._cache.clear()

    def invalidate_cache_entry(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[dict[str, Any]] = None,
    ) -> None:
        """Drop the cached response for *endpoint* called with *params*."""
        config = self.build_request(method, endpoint, params=params)
        self._cache.delete(self._make_cache_key(config))

    def set_cache_enabled(self, enabled: bool) -> None:
        """Enable (with a fresh in-memory cache) or disable response caching."""
        if enabled and not self.cache_enabled:
            self._cache = InMemoryCache(_DEFAULT_CACHE_SIZE)
        elif not enabled and self.cache_enabled:
            self._cache.close()
            self._cache = NoOpCache()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _run_request_interceptors(self, config: RequestConfig) -> RequestConfig:
        for interceptor in self._request_interceptors:
            try:
                config = await interceptor.on_request(config)
            except Exception as exc:
                replacement = await interceptor.on_error(exc)
                if replacement is None:
                    raise
                config = replacement
        return config

    async def _run_response_interceptors(self, response: ApiResponse) -> ApiResponse:
        for interceptor in self._response_interceptors:
            response = await interceptor.on_response(response)
        return response

    async def _recover(self, error: Exception) -> Optional[ApiResponse]:
        """Offer a final error to response interceptors; return the first recovery."""
        for interceptor in self._response_interceptors:
            recovered = await interceptor.on_error(error)
            if recovered is not None:
                logger.debug("Response interceptor recovered from %s", type(error).__name__)
                return recovered
        return None

    async def _execute_with_retry(self, config: RequestConfig) -> ApiResponse:
        """Dispatch *config*, retrying retryable failures with exponential backoff.

        Each attempt gets the full timeout.  Non-retryable failures
        propagate after exactly one attempt.
        """
        for attempt in range(self._max_retries + 1):
            try:
                return await self._dispatch(config)
            except CourierError as exc:
                if attempt >= self._max_retries or not is_retryable(exc):
                    raise
                delay = self._retry_delay * (2 ** attempt)
                logger.debug(
                    "%s, retrying in %.1fs (attempt %d/%d)",
                    exc, delay, attempt + 1, self._max_retries,
                )
                await asyncio.sleep(delay)

        raise NetworkError("Request failed after all retries")  # pragma: no cover

    async def _dispatch(self, config: RequestConfig) -> ApiResponse:
        """Send one attempt and classify its outcome."""
        kwargs: dict[str, Any] = {
            "method": config.method.value,
            "url": config.url,
            "headers": config.headers,
            "timeout": config.timeout,
        }
        if isinstance(config.body, (str, bytes)):
            kwargs["content"] = config.body
        elif config.body is not None:
            kwargs["content"] = json.dumps(config.body, default=str)

        try:
            raw = await self.http.request(**kwargs)
        except httpx.TimeoutException as exc:
            raise TimeoutError_(f"Request timeout after {config.timeout}s") from exc
        except httpx.UnsupportedProtocol as exc:
            raise ValidationError(f"Invalid URL '{config.url}': {exc}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Network error: {exc}", cause=exc) from exc
        except httpx.InvalidURL as exc:
            raise ValidationError(f"Invalid URL '{config.url}': {exc}") from exc

        response = to_api_response(raw)
        if not response.ok:
            raise HttpError(response.status_code, response.status_text, response.body)
        return response

    def _make_cache_key(self, config: RequestConfig) -> CacheKey:
        return CacheKey(
            method=config.method.value,
            url=config.url,
            params=json.dumps(config.params, sort_keys=True, default=str) if config.params else None,
            body=json.dumps(config.body, sort_keys=True, default=str) if config.body is not None else None,
        )

    def _cache_store(self, key: CacheKey, response: ApiResponse) -> None:
        if self._respect_cache_headers:
            ttl = cache_ttl_from_headers(response.headers, self._cache_ttl)
        else:
            ttl = self._cache_ttl
        if ttl is None:
            logger.debug("Not caching %s: Cache-Control forbids it", key.url)
            return
        self._cache.set(
            key,
            CacheEntry(
                data=response,
                timestamp=now_ms(),
                ttl=ttl,
                etag=response.headers.get("etag"),
                last_modified=response.headers.get("last-modified"),
            ),
        )


def build_cache(config: CacheConfig) -> CacheStrategy:
    """Instantiate the cache strategy described by *config*."""
    if not config.enabled:
        return NoOpCache()
    if config.backend == "disk":
        return DiskCache(get_cache_dir())
    return InMemoryCache(config.max_size, config.eviction_policy)


def create_client(
    settings: ClientSettings,
    token_manager: Optional[TokenManager] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RequestEngine:
    """Create a :class:`RequestEngine` from a flat settings record.

    Args:
        settings: Typically the result of
            :func:`~courier.config.load_settings`.
        token_manager: Required to persist JWT sessions when
            ``settings.auth.token_profile`` is set.
        transport: Optional :mod:`httpx` transport.

    Returns:
        An engine wired with the configured auth strategy and cache.
    """
    return RequestEngine(
        settings.base_url,
        create_auth_strategy(settings.auth, token_manager=token_manager),
        timeout=settings.timeout,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay,
        cache=build_cache(settings.cache),
        cache_ttl=settings.cache.ttl_ms,
        respect_cache_headers=settings.cache.respect_cache_headers,
        default_headers=settings.default_headers,
        transport=transport,
    )
