"""
Retrying fetch helpers for the game backend API.

Wraps aiohttp requests with a per-attempt timeout and a bounded retry loop,
and turns error responses into the client's exception hierarchy.

Usage:
    from biomes.fetch import json_fetch, json_post

    profile = await json_fetch(session, "/api/social/self_profile")
    await json_post(session, "/api/user/save_username", {"username": "ada"})
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import aiohttp

from biomes.config import get_fetch_config
from biomes.exceptions import (
    APIError,
    HTTPResponseError,
    ServiceUnavailableError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

# Failures a fresh attempt can plausibly fix. asyncio.TimeoutError covers
# both our own per-attempt deadline and aiohttp's socket timeouts.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
)

# Error codes the backend reports in structured error bodies
API_ERROR_CODES = frozenset(
    {
        "bad_param",
        "unauthorized",
        "forbidden",
        "not_found",
        "conflict",
        "too_many_requests",
        "internal_error",
        "killswitched",
    }
)

_STATUS_TO_API_CODE = {
    400: "bad_param",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    429: "too_many_requests",
}


def _describe(error: BaseException) -> str:
    message = str(error)
    if isinstance(error, asyncio.TimeoutError) and not message:
        return "request timed out"
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


async def wrapped_fetch(
    session: aiohttp.ClientSession,
    url: str,
    *,
    method: str = "GET",
    timeout_ms: Optional[float] = None,
    retries: Optional[int] = None,
    retry_delay_ms: Optional[float] = None,
    **request_kwargs: Any,
) -> aiohttp.ClientResponse:
    """Perform a request with an optional per-attempt timeout and retries.

    Args:
        session: aiohttp session to issue the request on.
        url: Absolute URL, or a path relative to the session's base_url.
        method: HTTP method.
        timeout_ms: Deadline for each attempt; the in-flight request is
            cancelled when it passes and the attempt counts as failed.
        retries: Additional attempts after the first (default 3).
        retry_delay_ms: Fixed delay between attempts (default 1000).
        **request_kwargs: Passed through to session.request().

    Returns:
        The response of the first attempt that produced one.

    Raises:
        ServiceUnavailableError: The server answered 502 (not retried).
        TransientNetworkError: Every attempt failed or timed out.
        ValueError: Both timeout_ms and an aiohttp `timeout` were given.
    """
    defaults = get_fetch_config()
    retries = defaults.retries if retries is None else retries
    retry_delay_ms = defaults.retry_delay_ms if retry_delay_ms is None else retry_delay_ms
    timeout_ms = defaults.timeout_ms if timeout_ms is None else timeout_ms

    if timeout_ms and "timeout" in request_kwargs:
        raise ValueError(
            "Explicit timeout set during a fetch with timeout_ms. Use one or the other."
        )

    attempt = 0
    while True:
        try:
            request = session.request(method, url, **request_kwargs)
            if timeout_ms:
                response = await asyncio.wait_for(request, timeout=timeout_ms / 1000)
            else:
                response = await request
        except RETRYABLE_ERRORS as e:
            if attempt < retries:
                logger.warning(
                    f"Fetch failed for {url}: {_describe(e)}, "
                    f"retrying ({attempt + 1}/{retries})..."
                )
                await asyncio.sleep(retry_delay_ms / 1000)
                attempt += 1
                continue
            logger.error(f"Fetch failed for {url} after {attempt + 1} attempts: {_describe(e)}")
            raise TransientNetworkError(url, attempt + 1, _describe(e)) from e

        if response.status == 502:
            response.close()
            raise ServiceUnavailableError(url)
        return response


def _raise_potential_api_error(url: str, status: int, body: Any) -> None:
    code = body.get("code") if isinstance(body, Mapping) else None
    message = body.get("message") if isinstance(body, Mapping) else None
    if code not in API_ERROR_CODES:
        code = _STATUS_TO_API_CODE.get(status)
    if code is not None:
        raise APIError(code, message if isinstance(message, str) else None, status=status)


async def maybe_handle_error_response(url: str, response: aiohttp.ClientResponse) -> None:
    """Raise the appropriate error for a non-2xx response; return otherwise."""
    status = response.status
    if 200 <= status < 300:
        return
    if status == 502:
        raise ServiceUnavailableError(url)

    text = await response.text()
    try:
        body = json.loads(text)
    except ValueError:
        logger.error(f"{url}: Bad JSON errorCode={status} {response.reason}")
        _raise_potential_api_error(url, status, None)
        raise HTTPResponseError(url, status, text) from None

    _raise_potential_api_error(url, status, body)

    if isinstance(body, Mapping):
        if body.get("message"):
            raise HTTPResponseError(url, status, str(body["message"]))
        if body.get("code"):
            raise HTTPResponseError(url, status, str(body["code"]))
    raise HTTPResponseError(url, status, (response.reason or "") + json.dumps(body))


def is_api_error_code(code: str, error: BaseException) -> bool:
    """True if `error` is an APIError carrying `code`."""
    return isinstance(error, APIError) and error.code == code


async def json_fetch(session: aiohttp.ClientSession, url: str, **kwargs: Any) -> Any:
    """Fetch `url` and decode the JSON response."""
    response = await wrapped_fetch(session, url, **kwargs)
    await maybe_handle_error_response(url, response)
    return await response.json(content_type=None)


async def binary_fetch(session: aiohttp.ClientSession, url: str, **kwargs: Any) -> bytes:
    """Fetch `url` and return the raw response body."""
    response = await wrapped_fetch(session, url, **kwargs)
    await maybe_handle_error_response(url, response)
    return await response.read()


async def json_post(
    session: aiohttp.ClientSession,
    url: str,
    payload: Any,
    **kwargs: Any,
) -> Any:
    """POST `payload` as JSON and decode the JSON response."""
    return await json_fetch(session, url, method="POST", json=payload, **kwargs)


async def json_post_no_body(session: aiohttp.ClientSession, url: str, **kwargs: Any) -> Any:
    """POST without a request body and decode the JSON response."""
    headers = {"Content-Type": "application/json", **kwargs.pop("headers", {})}
    return await json_fetch(session, url, method="POST", headers=headers, **kwargs)


async def binary_post(session: aiohttp.ClientSession, url: str, payload: Any) -> bytes:
    """POST `payload` as JSON and return the raw response body."""
    response = await wrapped_fetch(session, url, method="POST", json=payload)
    await maybe_handle_error_response(url, response)
    return await response.read()


async def json_post_any_response(
    session: aiohttp.ClientSession,
    url: str,
    payload: Any,
    **kwargs: Any,
) -> aiohttp.ClientResponse:
    """POST `payload` as JSON, accepting only a 200 or 204 response."""
    response = await wrapped_fetch(session, url, method="POST", json=payload, **kwargs)
    if response.status not in (200, 204):
        logger.error(f"Bad response from {url}: {response.status}")
        raise HTTPResponseError(url, response.status, response.reason or "")
    return response


__all__ = [
    "API_ERROR_CODES",
    "RETRYABLE_ERRORS",
    "wrapped_fetch",
    "maybe_handle_error_response",
    "is_api_error_code",
    "json_fetch",
    "binary_fetch",
    "json_post",
    "json_post_no_body",
    "binary_post",
    "json_post_any_response",
]
