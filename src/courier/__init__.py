"""courier -- authenticated async HTTP client core.

This package provides a request engine that validates, dispatches, retries
and caches HTTP calls, plus pluggable authentication strategies and a
credential lifecycle layer on top of an opaque secret vault.

Typical workflow::

    from courier.auth import ApiKeyAuth
    from courier.client import RequestEngine

    async with RequestEngine("https://api.example.com", auth=ApiKeyAuth("k")) as engine:
        await engine.authenticate()
        response = await engine.get("/users", params={"page": 1})

Modules:
    models: Pydantic models shared across the package.
    config: XDG-aware settings loading and credential source resolution.
    exceptions: Typed error taxonomy consumed by retry and caller logic.
    cache: Cache strategies (in-memory LRU/FIFO, disk, no-op).
    client: The request engine and its interceptor contracts.
    auth: Authentication strategies, credential store and token manager.
"""

__version__ = "0.1.0"
