"""
Shared pytest fixtures for the biomes client test suite.

Provides mock aiohttp sessions and responses, in-memory client storage and
the resets that keep module-level registries from leaking between tests.
"""

import json
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from biomes.cvals import reset_cvals
from biomes.storage import ClientStorage


def make_response(
    status: int = 200,
    body: Any = None,
    text: Optional[str] = None,
    reason: str = "OK",
) -> MagicMock:
    """Build a mock aiohttp.ClientResponse.

    `body` is served by json(); text() returns `text` or the JSON encoding
    of `body`.
    """
    response = MagicMock()
    response.status = status
    response.reason = reason
    response.json = AsyncMock(return_value=body)
    if text is None:
        text = json.dumps(body) if body is not None else ""
    response.text = AsyncMock(return_value=text)
    response.read = AsyncMock(return_value=text.encode())
    response.close = MagicMock()
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


# ============================================================================
# Registry Resets
# ============================================================================


@pytest.fixture(autouse=True)
def reset_cval_registry():
    """Drop cvals registered by the previous test."""
    reset_cvals()
    yield
    reset_cvals()


@pytest.fixture(autouse=True)
def fast_fetch_defaults(monkeypatch):
    """Keep fetch retry delays out of test wall time."""
    monkeypatch.setenv("BIOMES_FETCH_RETRY_DELAY_MS", "0")
    for name in ("BIOMES_FETCH_RETRIES", "BIOMES_FETCH_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# HTTP Client Mocking Fixtures
# ============================================================================


@pytest.fixture
def response_factory():
    """Factory for mock aiohttp responses."""
    return make_response


@pytest.fixture
def mock_aiohttp_session():
    """Create a mock aiohttp.ClientSession.

    `session.request` is an AsyncMock; set its return_value or side_effect
    to script responses. The cookie jar starts empty.
    """
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    session.request = AsyncMock(return_value=make_response(200, {}))
    session.cookie_jar = []
    return session


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def memory_storage() -> ClientStorage:
    """In-memory client storage."""
    return ClientStorage()


@pytest.fixture
def file_storage(tmp_path) -> ClientStorage:
    """Client storage persisted under a temporary directory."""
    return ClientStorage(tmp_path / "biomes" / "local_storage.json")
