"""
Registry of named numeric observability values ("cvals").

A cval is a path plus a collect callback; readers call collect() when they
want the current value. The loader publishes the time a player spent on the
loading screen this way.

Usage:
    from biomes.cvals import make_cval_hook, collect_cvals

    make_cval_hook(["game", "startup_load_seconds"], "Loading screen time", lambda: 4.2)
    collect_cvals()  # {"game/startup_load_seconds": 4.2}
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CvalHook:
    path: tuple[str, ...]
    help: str
    collect: Callable[[], float]

    @property
    def key(self) -> str:
        return "/".join(self.path)


_cvals: dict[str, CvalHook] = {}
_cvals_lock = threading.Lock()


def make_cval_hook(path: Sequence[str], help: str, collect: Callable[[], float]) -> CvalHook:
    """Register (or replace) the cval at `path` (thread-safe)."""
    if not path:
        raise ValueError("cval path must not be empty")
    hook = CvalHook(tuple(path), help, collect)
    with _cvals_lock:
        _cvals[hook.key] = hook
    return hook


def get_cval(key: str) -> float | None:
    """Current value of one cval, or None if unregistered."""
    with _cvals_lock:
        hook = _cvals.get(key)
    return hook.collect() if hook is not None else None


def collect_cvals() -> dict[str, float]:
    """Collect every registered cval. Failing collectors are skipped."""
    with _cvals_lock:
        hooks = list(_cvals.values())
    values: dict[str, float] = {}
    for hook in hooks:
        try:
            values[hook.key] = hook.collect()
        except Exception as e:
            logger.warning(f"Failed to collect cval {hook.key}: {e}")
    return values


def reset_cvals() -> None:
    """Drop every registered cval. Useful for testing."""
    with _cvals_lock:
        _cvals.clear()
