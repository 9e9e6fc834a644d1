"""
Authentication API calls used by the login flows and the session manager.

All calls go through the retrying fetch helpers; "not logged in" answers
(401/404) are reported as values rather than errors wherever the caller
only needs to know whether a session exists.
"""

from __future__ import annotations

import asyncio
import logging
import re
import webbrowser
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import aiohttp

from biomes.exceptions import (
    AccountDoesntExistError,
    AuthError,
    LoginTimeoutError,
)
from biomes.fetch import is_api_error_code, json_fetch, json_post, wrapped_fetch
from biomes.storage import DEV_LOGIN_KEY, ClientStorage

logger = logging.getLogger(__name__)

AUTH_USER_COOKIE = "BUID"

FOREIGN_AUTH_PROVIDERS = ("discord", "google", "twitch", "steam", "email", "dev")

LOGIN_POLL_INTERVAL_SECONDS = 1.0
LOGIN_MAX_CHECKS = 60
# Checks to wait before re-running a dev login from the stored hint
LOGIN_FALLBACK_AFTER_CHECKS = 10

SELF_EXISTS_RETRIES = 3

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 20
_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9]+[a-zA-Z0-9.]*[a-zA-Z0-9]+$")
_INVALID_USERNAME_CHARS = re.compile(r"[^a-zA-Z0-9.]+")
_PROFANITY = frozenset({"fuck", "shit", "cunt", "bitch", "asshole", "nigger", "faggot"})


def could_be_logged_in(session: aiohttp.ClientSession) -> bool:
    """Cheap local check: is an auth cookie present at all?"""
    for cookie in session.cookie_jar:
        if cookie.key == AUTH_USER_COOKIE and cookie.value:
            return True
    return False


async def check_logged_in(session: aiohttp.ClientSession) -> Optional[int]:
    """Ask the server who we are.

    Returns:
        The logged-in user id, or None when not logged in.
    """
    try:
        res = await json_post(session, "/api/auth/check", {})
    except Exception as e:
        if is_api_error_code("unauthorized", e) or is_api_error_code("not_found", e):
            return None
        raise
    user_id = res.get("userId") if isinstance(res, dict) else None
    return user_id or None


async def logout(session: aiohttp.ClientSession) -> None:
    """Clear the server-side session."""
    await json_post(session, "/api/auth/logout", {})


def construct_foreign_auth_url(
    provider: str,
    base_url: str = "",
    extra: Optional[dict[str, Optional[str]]] = None,
) -> str:
    """Build /api/auth/{provider}/login with the non-None `extra` params."""
    if provider not in FOREIGN_AUTH_PROVIDERS:
        raise ValueError(f"Unknown auth provider: {provider}")
    url = f"{base_url.rstrip('/')}/api/auth/{provider}/login"
    params = {k: v for k, v in (extra or {}).items() if v is not None}
    if params:
        url += "?" + urlencode(params)
    return url


async def email_login(
    session: aiohttp.ClientSession, email: str, invite_code: Optional[str] = None
) -> None:
    """Request a sign-in email."""
    try:
        await json_post(
            session,
            construct_foreign_auth_url("email", extra={"email": email, "inviteCode": invite_code}),
            {},
        )
    except Exception as e:
        if is_api_error_code("not_found", e):
            raise AccountDoesntExistError() from e
        raise


async def dev_login(
    session: aiohttp.ClientSession,
    username_or_id: str,
    invite_code: Optional[str] = None,
    *,
    storage: Optional[ClientStorage] = None,
    poll_interval: float = LOGIN_POLL_INTERVAL_SECONDS,
    _allow_fallback: bool = True,
) -> None:
    """Log in as a development user and wait until the session is live."""
    if storage is not None:
        storage.set_item(DEV_LOGIN_KEY, username_or_id)

    try:
        res = await json_post(
            session,
            construct_foreign_auth_url(
                "dev", extra={"usernameOrId": username_or_id, "inviteCode": invite_code}
            ),
            {},
        )
        uri = res.get("uri") if isinstance(res, dict) else None
        if not uri:
            raise AuthError("Invalid authentication URI received")

        async with await wrapped_fetch(session, uri) as response:
            if not 200 <= response.status < 300:
                raise AuthError(f"Authentication failed with status: {response.status}")

        await wait_for_logged_in(
            session,
            storage=storage if _allow_fallback else None,
            poll_interval=poll_interval,
        )

        if not await check_logged_in(session):
            raise AuthError("Login process completed but user is not authenticated")
    except Exception as e:
        logger.error(f"Dev login error: {e}")
        if is_api_error_code("not_found", e):
            raise AccountDoesntExistError() from e
        raise


async def wait_for_logged_in(
    session: aiohttp.ClientSession,
    *,
    storage: Optional[ClientStorage] = None,
    poll_interval: float = LOGIN_POLL_INTERVAL_SECONDS,
    max_checks: int = LOGIN_MAX_CHECKS,
) -> None:
    """Poll /api/auth/check until it reports a user.

    401 keeps waiting. 404 keeps waiting too, and after a number of checks
    re-runs the dev login stored in `storage`, if any.

    Raises:
        LoginTimeoutError: No session after `max_checks` checks.
        AccountDoesntExistError: The fallback dev login failed.
    """
    for attempt in range(1, max_checks + 1):
        try:
            res = await json_post(session, "/api/auth/check", {})
            if isinstance(res, dict) and res.get("userId"):
                return
        except Exception as e:
            if is_api_error_code("not_found", e):
                stored = storage.get_item(DEV_LOGIN_KEY) if storage is not None else None
                if stored and attempt > LOGIN_FALLBACK_AFTER_CHECKS:
                    logger.warning("Attempting fallback authentication...")
                    try:
                        await dev_login(
                            session,
                            stored,
                            storage=storage,
                            poll_interval=poll_interval,
                            _allow_fallback=False,
                        )
                    except Exception as fallback_error:
                        raise AccountDoesntExistError() from fallback_error
                    return
            elif not is_api_error_code("unauthorized", e):
                raise
        await asyncio.sleep(poll_interval)
    raise LoginTimeoutError(max_checks)


async def foreign_login(
    session: aiohttp.ClientSession,
    provider: str,
    invite_code: Optional[str] = None,
    *,
    base_url: str = "",
    open_url: Callable[[str], Any] = webbrowser.open,
    poll_interval: float = LOGIN_POLL_INTERVAL_SECONDS,
) -> None:
    """Open the provider's login page and wait for the session to appear."""
    open_url(construct_foreign_auth_url(provider, base_url, {"inviteCode": invite_code}))
    await wait_for_logged_in(session, poll_interval=poll_interval)


async def self_exists(
    session: aiohttp.ClientSession, *, retry_delay: float = 1.0
) -> bool:
    """Whether the logged-in user has a profile.

    Unauthorized/not-found answers are retried a few times before
    concluding no; any other failure is logged and reported as False.
    """
    retries = SELF_EXISTS_RETRIES
    try:
        while retries > 0:
            try:
                profile = await json_fetch(session, "/api/social/self_profile")
                return bool(isinstance(profile, dict) and profile.get("user"))
            except Exception as e:
                if is_api_error_code("not_found", e) or is_api_error_code("unauthorized", e):
                    if retries > 1:
                        await asyncio.sleep(retry_delay)
                        retries -= 1
                        continue
                    return False
                raise
        return False
    except Exception as e:
        logger.error(f"Error checking if self exists: {e}")
        return False


async def save_username(session: aiohttp.ClientSession, username: str) -> None:
    await json_post(session, "/api/user/save_username", {"username": username})


def contains_profanity(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in _PROFANITY)


def invalid_username_reason(username: str) -> Optional[str]:
    """Human-readable reason `username` is rejected, or None if it is fine."""
    if contains_profanity(username):
        return "Username contains profanity."
    if len(username) > MAX_USERNAME_LENGTH:
        return "Username is too long."
    if len(username) < MIN_USERNAME_LENGTH:
        return f"Username must be at least {MIN_USERNAME_LENGTH} characters."
    if not _USERNAME_PATTERN.match(username):
        invalid: list[str] = []
        for run in _INVALID_USERNAME_CHARS.findall(username):
            for ch in run:
                name = "space" if ch == " " else ch
                if name not in invalid:
                    invalid.append(name)
        return "Username contains invalid characters: " + ", ".join(invalid)
    return None
