"""Interceptor contracts for the request pipeline.

Interceptors are run by :class:`~courier.client.engine.RequestEngine`
strictly in registration order, one at a time:

* :class:`RequestInterceptor` -- sees each outgoing
  :class:`~courier.models.RequestConfig` before validation and may return
  a modified copy.
* :class:`ResponseInterceptor` -- sees each successful
  :class:`~courier.models.ApiResponse` before it is cached and returned.

Both carry an ``on_error`` hook.  For a request interceptor it is called
when its own ``on_request`` raises; for a response interceptor it is called
with the final error of a failed request.  Returning ``None`` lets the
error propagate; returning a config (or response) recovers.
"""

from __future__ import annotations

from typing import Optional

from courier.models import ApiResponse, RequestConfig


class RequestInterceptor:
    """Base class for outgoing-request interceptors.

    Example::

        class TraceInterceptor(RequestInterceptor):
            async def on_request(self, config):
                headers = {**config.headers, "X-Trace-Id": new_trace_id()}
                return config.model_copy(update={"headers": headers})
    """

    async def on_request(self, config: RequestConfig) -> RequestConfig:
        return config

    async def on_error(self, error: Exception) -> Optional[RequestConfig]:
        """Handle an exception raised by :meth:`on_request`.

        Returns:
            A replacement config to continue with, or ``None`` to let
            *error* propagate.
        """
        return None


class ResponseInterceptor:
    """Base class for response interceptors."""

    async def on_response(self, response: ApiResponse) -> ApiResponse:
        return response

    async def on_error(self, error: Exception) -> Optional[ApiResponse]:
        """Handle the final error of a failed request.

        Returns:
            A response to return instead, or ``None`` to let *error*
            propagate.
        """
        return None
