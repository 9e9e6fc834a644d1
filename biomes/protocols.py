"""
Protocol definitions for the collaborators the client loader drives.

The rendering pipeline, the entity table, mesh generation and the server
channel live outside this package. The loader only reads the handful of
signals it needs to classify progress, through these interfaces.

Usage:
    from biomes.protocols import BootstrapHandle, ClientInitializer

    async def initialize(user_id: int, options: dict | None) -> BootstrapHandle:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class ChannelStats(Protocol):
    """State of the realtime server channel."""

    status: str


@runtime_checkable
class ClientIO(Protocol):
    """Network side of the early client context."""

    channel_stats: ChannelStats
    bootstrapped: bool


@runtime_checkable
class EarlyClientContext(Protocol):
    """Context available before the world is loaded."""

    io: ClientIO


@runtime_checkable
class EarlyContextLoader(Protocol):
    """Lazily builds the early client context."""

    @property
    def context(self) -> Optional[EarlyClientContext]:
        """The early context once construction has begun, else None."""
        ...

    @property
    def loaded(self) -> bool:
        """True once every early component has finished loading."""
        ...

    async def get(self, key: str) -> Any:
        """Resolve one named component of the early context."""
        ...


@runtime_checkable
class ClientContext(Protocol):
    """Fully started client: entity table, scene resources and renderer."""

    def entity_count(self) -> int:
        """Number of entities received from the server."""
        ...

    def local_player_id(self) -> Optional[int]:
        """Id of the local player, None when playing anonymously."""
        ...

    def player_mesh_loaded(self, player_id: int) -> bool:
        """Whether the mesh of `player_id` is built."""
        ...

    def all_player_shards_meshed(self) -> bool:
        """Whether every terrain shard around the local player is meshed."""
        ...

    def rendered_frames(self) -> int:
        """Frames rendered so far."""
        ...

    def trigger_player_shards_mesh(self) -> Awaitable[None]:
        """Request meshing of unmeshed shards around the local player."""
        ...


@dataclass
class BootstrapHandle:
    """What the early bootstrap step hands back to the loader.

    Attributes:
        early_context_loader: Loader polled for network/bootstrap progress.
        start: Completes the bootstrap and produces the full ClientContext.
        stop: Tears down everything the bootstrap started.
    """

    early_context_loader: EarlyContextLoader
    start: Callable[[], Awaitable[ClientContext]]
    stop: Callable[[], Awaitable[None]]


ClientInitializer = Callable[[int, Optional[dict[str, Any]]], Awaitable[BootstrapHandle]]
