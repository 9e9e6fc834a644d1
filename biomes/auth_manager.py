"""
Authenticated identity of the local player.

AuthSessionManager resolves the player's profile once during bootstrap and
owns the resulting BiomesSession for the rest of the client's lifetime.
A profile that cannot be fetched, or that belongs to someone else, yields a
local fallback session: playing on with empty roles beats blocking the load.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

import aiohttp

from biomes import auth
from biomes.auth import construct_foreign_auth_url
from biomes.exceptions import AuthMismatchError
from biomes.fetch import is_api_error_code, json_fetch, wrapped_fetch
from biomes.protocols import EarlyContextLoader
from biomes.resilience import RetryPolicy, async_backoff_on_all_errors
from biomes.storage import DEV_LOGIN_KEY, ClientStorage

logger = logging.getLogger(__name__)

INVALID_BIOMES_ID = 0

SELF_PROFILE_PATH = "/api/social/self_profile"

PROFILE_RETRY_POLICY = RetryPolicy(
    base_delay_ms=1000,
    exponent=1.25,
    max_delay_ms=10_000,
    max_attempts=5,
)

# Delay between the logout call and the reload, lets the cookie clear land
LOGOUT_RELOAD_DELAY_SECONDS = 0.1


class SpecialRole(str, Enum):
    """Roles granting access beyond a regular player's."""

    ADMIN = "admin"
    ADVANCED_OPTIONS = "advancedOptions"
    APPLY = "apply"
    BAKE = "bake"
    CLONE = "clone"
    DELETE_GROUP = "deleteGroup"
    EMPLOYEE = "employee"
    EXPORT = "export"
    FLYING = "flying"
    GROUNDSKEEPER = "groundskeeper"
    HIGHLIGHT_GROUP = "highlightGroup"
    NO_CLIP = "noClip"
    SEE_HIDDEN = "seeHidden"
    TWO_WAY_INBOX = "twoWayInbox"
    UPLOAD = "upload"


def evaluate_role(roles: Iterable[SpecialRole], *required: SpecialRole) -> bool:
    """True if `roles` satisfies every role in `required`. Admin satisfies any."""
    held = frozenset(roles)
    if SpecialRole.ADMIN in held:
        return True
    return all(role in held for role in required)


def parse_roles(raw: Iterable[Any]) -> frozenset[SpecialRole]:
    """Convert role names from the API, dropping ones this client does not know."""
    roles = set()
    for name in raw:
        try:
            roles.add(SpecialRole(name))
        except ValueError:
            logger.debug(f"Ignoring unknown role: {name!r}")
    return frozenset(roles)


class BiomesSession:
    """The local player's identity. Only the role set may change."""

    def __init__(
        self,
        user_id: int,
        create_ms: Optional[float],
        roles: Iterable[SpecialRole] = (),
    ):
        self._user_id = user_id
        self._create_ms = create_ms
        self._roles: frozenset[SpecialRole] = frozenset(roles)

    @classmethod
    def anonymous(cls) -> "BiomesSession":
        return cls(INVALID_BIOMES_ID, None, ())

    @classmethod
    def fallback(cls, user_id: int) -> "BiomesSession":
        """Best-effort session built locally when the profile is unusable."""
        logger.warning(f"Creating fallback user profile for {user_id}")
        return cls(user_id, time.time() * 1000, ())

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def create_ms(self) -> Optional[float]:
        return self._create_ms

    @property
    def roles(self) -> frozenset[SpecialRole]:
        return self._roles

    @property
    def is_anonymous(self) -> bool:
        return self._user_id == INVALID_BIOMES_ID

    def has_special_role(self, *required: SpecialRole) -> bool:
        return evaluate_role(self._roles, *required)

    def update_special_roles(self, roles: Iterable[SpecialRole]) -> None:
        self._roles = frozenset(roles)

    def __repr__(self) -> str:
        roles = sorted(role.value for role in self._roles)
        return f"BiomesSession(user_id={self._user_id}, create_ms={self._create_ms}, roles={roles})"


def session_from_profile(user_id: int, profile: Any) -> BiomesSession:
    """Build a session from a self_profile response for `user_id`.

    Raises:
        AuthMismatchError: The profile belongs to a different user.
        KeyError, TypeError: The response is malformed.
    """
    user = profile["user"]
    if user["id"] != user_id:
        raise AuthMismatchError(user_id, user["id"])
    return BiomesSession(user["id"], user.get("createMs"), parse_roles(profile.get("roles") or ()))


class AuthSessionManager:
    """Owns the BiomesSession of the local player.

    Usage:
        manager = await AuthSessionManager.bootstrap(user_id, http)
        if manager.current_user.has_special_role(SpecialRole.FLYING):
            ...
    """

    def __init__(
        self,
        current_user: BiomesSession,
        http: Optional[aiohttp.ClientSession] = None,
        navigate: Optional[Callable[[str], Any]] = None,
    ):
        self.current_user = current_user
        self._http = http
        self._navigate = navigate or _log_navigation

    @classmethod
    async def fetch_user_profile(
        cls,
        user_id: int,
        http: aiohttp.ClientSession,
        *,
        policy: RetryPolicy = PROFILE_RETRY_POLICY,
        storage: Optional[ClientStorage] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> BiomesSession:
        """Resolve the session for `user_id`. Never raises on fetch failures."""
        if user_id == INVALID_BIOMES_ID:
            return BiomesSession.anonymous()

        async def fetch_once() -> Any:
            try:
                return await json_fetch(http, SELF_PROFILE_PATH)
            except Exception as e:
                if is_api_error_code("not_found", e) or is_api_error_code("unauthorized", e):
                    logger.error(f"Error fetching self profile (not authenticated), retrying: {e}")
                    await _refresh_auth_state(http, storage)
                else:
                    logger.error(f"Error fetching self profile, retrying: {e}")
                raise

        try:
            profile = await async_backoff_on_all_errors(fetch_once, policy, sleep=sleep)
        except Exception as e:
            logger.error(f"Failed to fetch user profile after multiple attempts: {e}")
            return BiomesSession.fallback(user_id)

        try:
            return session_from_profile(user_id, profile)
        except AuthMismatchError as e:
            logger.error(f"User ID mismatch in profile: {e}")
            return BiomesSession.fallback(user_id)
        except (KeyError, TypeError) as e:
            logger.error(f"Malformed self profile response: {e!r}")
            return BiomesSession.fallback(user_id)

    @classmethod
    async def bootstrap(
        cls,
        user_id: int,
        http: aiohttp.ClientSession,
        *,
        navigate: Optional[Callable[[str], Any]] = None,
        **fetch_kwargs: Any,
    ) -> "AuthSessionManager":
        session = await cls.fetch_user_profile(user_id, http, **fetch_kwargs)
        return cls(session, http=http, navigate=navigate)

    def update_special_roles(self, roles: Iterable[SpecialRole]) -> None:
        """Replace the role set on the existing session object."""
        self.current_user.update_special_roles(roles)

    async def logout(self) -> None:
        """Clear the server session, then reload the client at the root route."""
        if self._http is not None:
            await auth.logout(self._http)
        await asyncio.sleep(LOGOUT_RELOAD_DELAY_SECONDS)
        self._navigate("/")


async def _refresh_auth_state(
    http: aiohttp.ClientSession, storage: Optional[ClientStorage]
) -> None:
    """Replay the last dev login, if one was stored, to revive the auth cookie."""
    stored = storage.get_item(DEV_LOGIN_KEY) if storage is not None else None
    if not stored:
        return
    logger.warning("Attempting to refresh authentication state with stored credentials")
    try:
        url = construct_foreign_auth_url("dev", extra={"usernameOrId": stored})
        async with await wrapped_fetch(http, url, retries=0):
            pass
    except Exception as e:
        logger.error(f"Failed to refresh authentication state: {e}")


def _log_navigation(path: str) -> None:
    logger.info(f"Reloading client at {path}")


async def load_auth_manager(
    loader: EarlyContextLoader,
    http: aiohttp.ClientSession,
    **kwargs: Any,
) -> AuthSessionManager:
    """Bootstrap the manager for the user id held by the early context loader."""
    return await AuthSessionManager.bootstrap(await loader.get("userId"), http, **kwargs)
