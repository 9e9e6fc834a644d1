"""
Standardized HTTP client configuration with proper timeouts.

Provides consistent timeout and session management for every aiohttp
session the client opens against the game backend.

Usage:
    from biomes.http_client import create_client_session

    async with create_client_session(base_url="https://biomes.gg") as session:
        await json_fetch(session, "/api/social/self_profile")
"""

from __future__ import annotations

import aiohttp
from aiohttp import ClientTimeout

__all__ = [
    "DEFAULT_TIMEOUT",
    "AUTH_TIMEOUT",
    "get_default_timeout",
    "create_client_session",
]

# Default timeout for API requests made while loading
DEFAULT_TIMEOUT = ClientTimeout(
    total=30,  # Total time for the entire request
    connect=10,  # Time to establish connection
    sock_read=20,  # Time to read response
)

# Auth checks are polled once a second, fail fast
AUTH_TIMEOUT = ClientTimeout(
    total=10,
    connect=5,
    sock_read=5,
)


def get_default_timeout() -> ClientTimeout:
    """Get the default timeout configuration."""
    return DEFAULT_TIMEOUT


def create_client_session(
    timeout: ClientTimeout | None = None,
    base_url: str | None = None,
    **kwargs,
) -> aiohttp.ClientSession:
    """Create an aiohttp ClientSession with proper timeout configuration.

    Args:
        timeout: Optional custom timeout. Uses DEFAULT_TIMEOUT if not specified.
        base_url: Backend origin that relative API paths resolve against.
        **kwargs: Additional arguments passed to ClientSession.

    Returns:
        Configured aiohttp.ClientSession. A cookie jar is always attached
        so the auth cookie set by login endpoints is reused.
    """
    if timeout is None:
        timeout = DEFAULT_TIMEOUT
    kwargs.setdefault("cookie_jar", aiohttp.CookieJar(unsafe=True))
    if base_url is not None:
        return aiohttp.ClientSession(base_url=base_url, timeout=timeout, **kwargs)
    return aiohttp.ClientSession(timeout=timeout, **kwargs)
