"""
Loader configuration module.

Provides the tunables of the bootstrap sequencer and the fetch layer, with
validation and environment variable overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass(frozen=True)
class LoaderConfig:
    """Configuration for a ClientLoader instance.

    Attributes:
        max_load_retries: Attempts allowed after the first failed load.
        load_retry_delay_ms: Pause between a failed attempt and the next one.
        bootstrap_timeout_ms: Ceiling on the early bootstrap of one attempt.
        poll_rate_ms: Progress poll interval before the scene renders.
        render_poll_rate_ms: Poll interval while waiting for rendered frames.
        stall_threshold_ticks: Unchanged ticks tolerated before a stall.
        required_frames: Frames the renderer must produce before ready.

    Example:
        # Fail fast in an automated smoke test
        config = LoaderConfig(max_load_retries=0, bootstrap_timeout_ms=5000)
    """

    max_load_retries: int = 3
    load_retry_delay_ms: float = 2000.0
    bootstrap_timeout_ms: float = 60_000.0
    poll_rate_ms: float = 500.0
    render_poll_rate_ms: float = 1000.0 / 30
    stall_threshold_ticks: int = 30
    required_frames: int = 30

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_load_retries < 0:
            raise ValueError("max_load_retries must be non-negative")
        if self.load_retry_delay_ms < 0:
            raise ValueError("load_retry_delay_ms must be non-negative")
        if self.bootstrap_timeout_ms <= 0:
            raise ValueError("bootstrap_timeout_ms must be positive")
        if self.poll_rate_ms <= 0 or self.render_poll_rate_ms <= 0:
            raise ValueError("poll rates must be positive")
        if self.stall_threshold_ticks < 1:
            raise ValueError("stall_threshold_ticks must be at least 1")
        if self.required_frames < 0:
            raise ValueError("required_frames must be non-negative")

    def with_overrides(
        self,
        max_load_retries: Optional[int] = None,
        load_retry_delay_ms: Optional[float] = None,
        bootstrap_timeout_ms: Optional[float] = None,
        poll_rate_ms: Optional[float] = None,
        render_poll_rate_ms: Optional[float] = None,
        stall_threshold_ticks: Optional[int] = None,
        required_frames: Optional[int] = None,
    ) -> LoaderConfig:
        """Create a new config with the non-None overrides applied."""
        overrides = {
            "max_load_retries": max_load_retries,
            "load_retry_delay_ms": load_retry_delay_ms,
            "bootstrap_timeout_ms": bootstrap_timeout_ms,
            "poll_rate_ms": poll_rate_ms,
            "render_poll_rate_ms": render_poll_rate_ms,
            "stall_threshold_ticks": stall_threshold_ticks,
            "required_frames": required_frames,
        }
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class FetchConfig:
    """Defaults for RetryingFetch.

    Attributes:
        retries: Additional attempts after the first failed one.
        retry_delay_ms: Fixed pause between attempts.
        timeout_ms: Per-attempt deadline; None disables it.
    """

    retries: int = 3
    retry_delay_ms: float = 1000.0
    timeout_ms: Optional[float] = None

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be non-negative")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must be non-negative")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")


@dataclass(frozen=True)
class ClientConfig:
    """Where the client talks to."""

    base_url: str = DEFAULT_BASE_URL

    def url(self, path: str) -> str:
        """Join an API path onto the base URL."""
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")


def _get_env_int(name: str) -> Optional[int]:
    """Get an integer from environment variable, or None if not set/invalid."""
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _get_env_float(name: str) -> Optional[float]:
    """Get a float from environment variable, or None if not set/invalid."""
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def get_loader_config(base: Optional[LoaderConfig] = None) -> LoaderConfig:
    """Get loader configuration with environment overrides applied.

    Environment variables:
        BIOMES_MAX_LOAD_RETRIES: Override max_load_retries
        BIOMES_LOAD_RETRY_DELAY_MS: Override load_retry_delay_ms
        BIOMES_BOOTSTRAP_TIMEOUT_MS: Override bootstrap_timeout_ms
        BIOMES_STALL_THRESHOLD_TICKS: Override stall_threshold_ticks

    Args:
        base: Config to start from (defaults to LoaderConfig())

    Returns:
        LoaderConfig with overrides applied
    """
    config = base or LoaderConfig()
    return config.with_overrides(
        max_load_retries=_get_env_int("BIOMES_MAX_LOAD_RETRIES"),
        load_retry_delay_ms=_get_env_float("BIOMES_LOAD_RETRY_DELAY_MS"),
        bootstrap_timeout_ms=_get_env_float("BIOMES_BOOTSTRAP_TIMEOUT_MS"),
        stall_threshold_ticks=_get_env_int("BIOMES_STALL_THRESHOLD_TICKS"),
    )


def get_fetch_config() -> FetchConfig:
    """Get fetch defaults, honouring BIOMES_FETCH_RETRIES and friends."""
    defaults = FetchConfig()
    retries = _get_env_int("BIOMES_FETCH_RETRIES")
    delay = _get_env_float("BIOMES_FETCH_RETRY_DELAY_MS")
    timeout = _get_env_float("BIOMES_FETCH_TIMEOUT_MS")
    return FetchConfig(
        retries=retries if retries is not None else defaults.retries,
        retry_delay_ms=delay if delay is not None else defaults.retry_delay_ms,
        timeout_ms=timeout if timeout is not None else defaults.timeout_ms,
    )


def get_client_config() -> ClientConfig:
    """Get the client endpoint config (BIOMES_BASE_URL)."""
    return ClientConfig(base_url=os.environ.get("BIOMES_BASE_URL", DEFAULT_BASE_URL))
