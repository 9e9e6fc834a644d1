"""Tests for HTTP session construction."""

import aiohttp
import pytest

from biomes.http_client import (
    AUTH_TIMEOUT,
    DEFAULT_TIMEOUT,
    create_client_session,
    get_default_timeout,
)


class TestTimeouts:
    """Tests for the timeout presets."""

    def test_default_timeout(self):
        assert get_default_timeout() is DEFAULT_TIMEOUT
        assert DEFAULT_TIMEOUT.total == 30
        assert DEFAULT_TIMEOUT.connect == 10

    def test_auth_timeout_is_tighter(self):
        assert AUTH_TIMEOUT.total < DEFAULT_TIMEOUT.total


class TestCreateClientSession:
    """Tests for create_client_session."""

    @pytest.mark.asyncio
    async def test_defaults(self):
        async with create_client_session() as session:
            assert isinstance(session, aiohttp.ClientSession)
            assert session.timeout is DEFAULT_TIMEOUT
            assert isinstance(session.cookie_jar, aiohttp.CookieJar)

    @pytest.mark.asyncio
    async def test_custom_timeout_and_base_url(self):
        async with create_client_session(
            timeout=AUTH_TIMEOUT, base_url="http://localhost:3000"
        ) as session:
            assert session.timeout is AUTH_TIMEOUT
            assert session._base_url.host == "localhost"
            assert session._base_url.port == 3000

    @pytest.mark.asyncio
    async def test_explicit_cookie_jar_kept(self):
        jar = aiohttp.DummyCookieJar()
        async with create_client_session(cookie_jar=jar) as session:
            assert session.cookie_jar is jar
