"""
Tests for the auth session manager.

Tests cover:
- Anonymous, resolved and fallback sessions
- Profile fetch backoff and its warnings
- Auth refresh on 401/404
- Role evaluation and updates
- Logout navigation
"""

import logging
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from biomes.auth_manager import (
    INVALID_BIOMES_ID,
    AuthSessionManager,
    BiomesSession,
    SpecialRole,
    _refresh_auth_state,
    evaluate_role,
    load_auth_manager,
    parse_roles,
    session_from_profile,
)
from biomes.exceptions import APIError, AuthMismatchError, TransientNetworkError
from biomes.storage import DEV_LOGIN_KEY
from tests.conftest import make_response


def profile(user_id=7, create_ms=1_600_000_000_000, roles=()):
    return {"user": {"id": user_id, "createMs": create_ms}, "roles": list(roles)}


@pytest.fixture
def fake_sleep():
    return AsyncMock()


@pytest.fixture
def mock_json_fetch():
    with patch("biomes.auth_manager.json_fetch", new=AsyncMock()) as fetch:
        yield fetch


class TestRoles:
    """Tests for role parsing and evaluation."""

    def test_parse_drops_unknown_roles(self):
        assert parse_roles(["flying", "time_travel", "noClip"]) == frozenset(
            {SpecialRole.FLYING, SpecialRole.NO_CLIP}
        )

    def test_requires_every_role(self):
        roles = {SpecialRole.FLYING}
        assert evaluate_role(roles, SpecialRole.FLYING)
        assert not evaluate_role(roles, SpecialRole.FLYING, SpecialRole.NO_CLIP)

    def test_admin_satisfies_any_role(self):
        assert evaluate_role({SpecialRole.ADMIN}, SpecialRole.UPLOAD, SpecialRole.SEE_HIDDEN)

    def test_no_roles(self):
        assert not evaluate_role((), SpecialRole.EMPLOYEE)


class TestBiomesSession:
    """Tests for BiomesSession."""

    def test_anonymous(self):
        session = BiomesSession.anonymous()
        assert session.user_id == INVALID_BIOMES_ID
        assert session.is_anonymous
        assert session.roles == frozenset()

    def test_fallback_has_no_roles(self):
        before = time.time() * 1000
        session = BiomesSession.fallback(7)
        assert session.user_id == 7
        assert session.roles == frozenset()
        assert session.create_ms >= before
        assert not session.is_anonymous

    def test_identity_is_read_only(self):
        session = BiomesSession(7, 123.0, ())
        with pytest.raises(AttributeError):
            session.user_id = 8

    def test_update_special_roles(self):
        session = BiomesSession(7, 123.0, ())
        session.update_special_roles([SpecialRole.BAKE])
        assert session.has_special_role(SpecialRole.BAKE)
        assert session.user_id == 7

    def test_repr(self):
        session = BiomesSession(7, 1.0, [SpecialRole.FLYING, SpecialRole.ADMIN])
        assert repr(session) == "BiomesSession(user_id=7, create_ms=1.0, roles=['admin', 'flying'])"


class TestSessionFromProfile:
    """Tests for session_from_profile."""

    def test_builds_session(self):
        session = session_from_profile(7, profile(roles=["admin"]))
        assert session.user_id == 7
        assert session.create_ms == 1_600_000_000_000
        assert session.roles == frozenset({SpecialRole.ADMIN})

    def test_mismatch(self):
        with pytest.raises(AuthMismatchError) as exc_info:
            session_from_profile(7, profile(user_id=8))
        assert exc_info.value.requested_id == 7
        assert exc_info.value.received_id == 8

    def test_missing_roles(self):
        data = {"user": {"id": 7, "createMs": 5}}
        assert session_from_profile(7, data).roles == frozenset()


class TestFetchUserProfile:
    """Tests for AuthSessionManager.fetch_user_profile."""

    @pytest.mark.asyncio
    async def test_invalid_id_is_anonymous(self, mock_aiohttp_session, mock_json_fetch):
        session = await AuthSessionManager.fetch_user_profile(INVALID_BIOMES_ID, mock_aiohttp_session)

        assert session.is_anonymous
        mock_json_fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolves_profile(self, mock_aiohttp_session, mock_json_fetch, fake_sleep):
        mock_json_fetch.return_value = profile(roles=["flying", "upload"])

        session = await AuthSessionManager.fetch_user_profile(
            7, mock_aiohttp_session, sleep=fake_sleep
        )

        assert session.user_id == 7
        assert session.roles == frozenset({SpecialRole.FLYING, SpecialRole.UPLOAD})
        mock_json_fetch.assert_awaited_once_with(mock_aiohttp_session, "/api/social/self_profile")
        fake_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mismatch_falls_back(self, mock_aiohttp_session, mock_json_fetch, fake_sleep):
        mock_json_fetch.return_value = profile(user_id=99, roles=["admin"])

        session = await AuthSessionManager.fetch_user_profile(
            7, mock_aiohttp_session, sleep=fake_sleep
        )

        assert session.user_id == 7
        assert session.roles == frozenset()

    @pytest.mark.asyncio
    async def test_malformed_profile_falls_back(
        self, mock_aiohttp_session, mock_json_fetch, fake_sleep
    ):
        mock_json_fetch.return_value = {"unexpected": True}

        session = await AuthSessionManager.fetch_user_profile(
            7, mock_aiohttp_session, sleep=fake_sleep
        )

        assert session.user_id == 7
        assert session.roles == frozenset()

    @pytest.mark.asyncio
    async def test_exhausted_backoff_falls_back(
        self, mock_aiohttp_session, mock_json_fetch, fake_sleep
    ):
        mock_json_fetch.side_effect = TransientNetworkError("/api/social/self_profile", 4, "down")

        session = await AuthSessionManager.fetch_user_profile(
            7, mock_aiohttp_session, sleep=fake_sleep
        )

        assert session.user_id == 7
        assert session.roles == frozenset()
        assert mock_json_fetch.await_count == 5
        assert [c.args[0] for c in fake_sleep.await_args_list] == [1.0, 1.25, 1.563, 1.953]

    @pytest.mark.asyncio
    async def test_three_failures_then_success(
        self, mock_aiohttp_session, mock_json_fetch, fake_sleep, caplog
    ):
        caplog.set_level(logging.WARNING, logger="biomes.resilience")
        failure = TransientNetworkError("/api/social/self_profile", 4, "down")
        mock_json_fetch.side_effect = [failure, failure, failure, profile(roles=["admin"])]

        session = await AuthSessionManager.fetch_user_profile(
            7, mock_aiohttp_session, sleep=fake_sleep
        )

        assert session.has_special_role(SpecialRole.ADMIN)
        warnings = [
            r for r in caplog.records
            if r.name == "biomes.resilience" and r.levelno == logging.WARNING
        ]
        assert len(warnings) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["not_found", "unauthorized"])
    async def test_auth_errors_refresh_auth_state(
        self, mock_aiohttp_session, mock_json_fetch, fake_sleep, memory_storage, code
    ):
        mock_json_fetch.side_effect = [APIError(code), profile()]

        with patch("biomes.auth_manager._refresh_auth_state", new=AsyncMock()) as refresh:
            session = await AuthSessionManager.fetch_user_profile(
                7, mock_aiohttp_session, storage=memory_storage, sleep=fake_sleep
            )

        assert session.user_id == 7
        refresh.assert_awaited_once_with(mock_aiohttp_session, memory_storage)

    @pytest.mark.asyncio
    async def test_other_errors_do_not_refresh(
        self, mock_aiohttp_session, mock_json_fetch, fake_sleep
    ):
        mock_json_fetch.side_effect = [APIError("internal_error"), profile()]

        with patch("biomes.auth_manager._refresh_auth_state", new=AsyncMock()) as refresh:
            await AuthSessionManager.fetch_user_profile(7, mock_aiohttp_session, sleep=fake_sleep)

        refresh.assert_not_awaited()


class TestRefreshAuthState:
    """Tests for _refresh_auth_state."""

    @pytest.mark.asyncio
    async def test_without_hint_does_nothing(self, mock_aiohttp_session, memory_storage):
        with patch("biomes.auth_manager.wrapped_fetch", new=AsyncMock()) as fetch:
            await _refresh_auth_state(mock_aiohttp_session, memory_storage)
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replays_stored_dev_login(self, mock_aiohttp_session, memory_storage):
        memory_storage.set_item(DEV_LOGIN_KEY, "ada")
        response = make_response(200, {})

        with patch("biomes.auth_manager.wrapped_fetch", new=AsyncMock(return_value=response)) as fetch:
            await _refresh_auth_state(mock_aiohttp_session, memory_storage)

        fetch.assert_awaited_once_with(
            mock_aiohttp_session, "/api/auth/dev/login?usernameOrId=ada", retries=0
        )
        response.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_failure_is_logged(self, mock_aiohttp_session, memory_storage, caplog):
        memory_storage.set_item(DEV_LOGIN_KEY, "ada")
        failing = AsyncMock(side_effect=TransientNetworkError("/x", 1, "down"))

        with patch("biomes.auth_manager.wrapped_fetch", new=failing):
            with caplog.at_level(logging.ERROR, logger="biomes.auth_manager"):
                await _refresh_auth_state(mock_aiohttp_session, memory_storage)

        assert any("Failed to refresh" in r.getMessage() for r in caplog.records)


class TestAuthSessionManager:
    """Tests for the manager's lifecycle."""

    @pytest.mark.asyncio
    async def test_bootstrap(self, mock_aiohttp_session, mock_json_fetch, fake_sleep):
        mock_json_fetch.return_value = profile(roles=["employee"])

        manager = await AuthSessionManager.bootstrap(7, mock_aiohttp_session, sleep=fake_sleep)

        assert manager.current_user.user_id == 7
        assert manager.current_user.has_special_role(SpecialRole.EMPLOYEE)

    def test_update_special_roles_keeps_session_object(self):
        session = BiomesSession(7, 1.0, [SpecialRole.FLYING])
        manager = AuthSessionManager(session)

        manager.update_special_roles([SpecialRole.NO_CLIP])

        assert manager.current_user is session
        assert session.roles == frozenset({SpecialRole.NO_CLIP})

    @pytest.mark.asyncio
    async def test_logout_navigates_to_root(self, mock_aiohttp_session):
        navigate = MagicMock()
        manager = AuthSessionManager(
            BiomesSession(7, 1.0), http=mock_aiohttp_session, navigate=navigate
        )

        with patch("biomes.auth_manager.asyncio.sleep", new=AsyncMock()) as sleep:
            await manager.logout()

        mock_aiohttp_session.request.assert_awaited_once_with("POST", "/api/auth/logout", json={})
        sleep.assert_awaited_once_with(0.1)
        navigate.assert_called_once_with("/")

    @pytest.mark.asyncio
    async def test_load_auth_manager_reads_user_id(self, mock_aiohttp_session, mock_json_fetch):
        loader = MagicMock()
        loader.get = AsyncMock(return_value=INVALID_BIOMES_ID)

        manager = await load_auth_manager(loader, mock_aiohttp_session)

        loader.get.assert_awaited_once_with("userId")
        assert manager.current_user.is_anonymous
