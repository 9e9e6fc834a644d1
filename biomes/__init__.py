"""
biomes: client bootstrap for the Biomes game.

Takes a client session from nothing loaded to a rendered world:

BOOTSTRAP SEQUENCER:
- ClientLoader drives early bootstrap, progress polling and bounded retries
- Stall detection resolves with a partially loaded context
- Startup duration published as the game/startup_load_seconds cval

LOAD PROGRESS:
- LoadProgress snapshots classified into thirteen ordered stages
- Stage table carries loading-screen text and progress-bar rank

AUTH:
- AuthSessionManager resolves the local player's roles with backoff
- Falls back to a role-less session when the profile cannot be fetched
- Dev, email and foreign-provider login flows

NETWORK:
- wrapped_fetch retries transient failures with a fixed delay
- Structured API error parsing, 502 surfaced as ServiceUnavailableError
"""

from __future__ import annotations

import importlib
from typing import Any

from biomes.__version__ import __version__

_EXPORT_MAP = {
    # Sequencer
    'ClientLoader': ('biomes.loader', 'ClientLoader'),
    'LoadAttempt': ('biomes.loader', 'LoadAttempt'),
    'LoaderState': ('biomes.loader', 'LoaderState'),
    # Load progress
    'ConnectionStatus': ('biomes.load_progress', 'ConnectionStatus'),
    'LoadProgress': ('biomes.load_progress', 'LoadProgress'),
    'Stage': ('biomes.load_progress', 'Stage'),
    'classify': ('biomes.load_progress', 'classify'),
    'summarize': ('biomes.load_progress', 'summarize'),
    # Auth
    'AuthSessionManager': ('biomes.auth_manager', 'AuthSessionManager'),
    'BiomesSession': ('biomes.auth_manager', 'BiomesSession'),
    'SpecialRole': ('biomes.auth_manager', 'SpecialRole'),
    # Network
    'wrapped_fetch': ('biomes.fetch', 'wrapped_fetch'),
    'json_fetch': ('biomes.fetch', 'json_fetch'),
    'json_post': ('biomes.fetch', 'json_post'),
    'create_client_session': ('biomes.http_client', 'create_client_session'),
    # Resilience
    'RetryPolicy': ('biomes.resilience', 'RetryPolicy'),
    'async_backoff_on_all_errors': ('biomes.resilience', 'async_backoff_on_all_errors'),
    # Configuration
    'LoaderConfig': ('biomes.config', 'LoaderConfig'),
    'FetchConfig': ('biomes.config', 'FetchConfig'),
    # Errors
    'BiomesError': ('biomes.exceptions', 'BiomesError'),
    'ExhaustedRetriesError': ('biomes.exceptions', 'ExhaustedRetriesError'),
    'LoaderStoppedError': ('biomes.exceptions', 'LoaderStoppedError'),
}


def __getattr__(name: str) -> Any:
    """Lazily import public symbols so `python -m biomes stages` stays light."""
    try:
        module_name, attr_name = _EXPORT_MAP[name]
    except KeyError as exc:
        raise AttributeError(f"module 'biomes' has no attribute {name!r}") from exc
    module = importlib.import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))


__all__ = ["__version__", *_EXPORT_MAP]
