"""
Load progress snapshots and their classification into stages.

A LoadProgress is a point-in-time read of every signal the loading screen
cares about. classify() maps it to exactly one Stage; the stage table gives
each Stage its loading-screen text and its position on the progress bar.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, NamedTuple, Optional

from biomes.protocols import ClientContext, EarlyContextLoader

# Frames the renderer must produce before the scene counts as settled
REQUIRED_FRAMES = 30


class ConnectionStatus(str, Enum):
    """Transport states reported by the server channel."""

    DISCONNECTED = "disconnected"
    CLOSING = "closing"
    CONNECTING = "connecting"
    WAITING_ON_HEARTBEAT = "waitingOnHeartbeat"
    RECONNECTING = "reconnecting"
    INTERRUPTED = "interrupted"
    UNHEALTHY = "unhealthy"
    READY = "ready"


class Stage(str, Enum):
    """Where the client is on its way from nothing to a rendered world."""

    NO_PROGRESS = "no_progress"
    NO_EARLY_CONTEXT = "no_early_context"
    EARLY_CONTEXT = "early_context"
    CONNECTING = "connecting"
    WAITING_FOR_HEARTBEAT = "waiting_for_heartbeat"
    PROBLEMS_CONNECTING = "problems_connecting"
    BROKEN = "broken"
    BOOTSTRAPPING = "bootstrapping"
    GAME_ENTITIES = "game_entities"
    PLAYER_MESH = "player_mesh"
    TERRAIN_MESHING = "terrain_meshing"
    SCENE_RENDERED = "scene_rendered"
    READY = "ready"

    @property
    def description(self) -> str:
        return STAGE_TABLE[self].description

    @property
    def rank(self) -> int:
        return STAGE_TABLE[self].rank


class StageInfo(NamedTuple):
    description: str
    rank: int


STAGE_TABLE: dict[Stage, StageInfo] = {
    Stage.NO_PROGRESS: StageInfo("Pulling the big lever...", 0),
    Stage.NO_EARLY_CONTEXT: StageInfo("Tuning...", 1),
    Stage.EARLY_CONTEXT: StageInfo("Scanning frequencies...", 2),
    Stage.CONNECTING: StageInfo("Starting transmission...", 3),
    Stage.WAITING_FOR_HEARTBEAT: StageInfo("Checking pulse...", 4),
    Stage.PROBLEMS_CONNECTING: StageInfo("Problems while connecting to server, retrying...", 5),
    Stage.BROKEN: StageInfo("Can't connect to server right now. Retrying...", 6),
    Stage.BOOTSTRAPPING: StageInfo("Pulling up bootstraps...", 7),
    Stage.GAME_ENTITIES: StageInfo("Learning about the world...", 8),
    Stage.PLAYER_MESH: StageInfo("Acquiring some style...", 9),
    Stage.TERRAIN_MESHING: StageInfo("Getting grounded...", 10),
    Stage.SCENE_RENDERED: StageInfo("Lets see what's out there...", 11),
    Stage.READY: StageInfo("Let's go!", 12),
}


def _check_stage_table() -> None:
    missing = [stage.value for stage in Stage if stage not in STAGE_TABLE]
    if missing:
        raise RuntimeError(f"Stage table is missing: {missing}")
    ranks = sorted(info.rank for info in STAGE_TABLE.values())
    if ranks != list(range(len(Stage))):
        raise RuntimeError(f"Stage ranks must be unique and contiguous, got {ranks}")


_check_stage_table()


def description_for(stage: Stage) -> str:
    return STAGE_TABLE[stage].description


def rank_for(stage: Stage) -> int:
    return STAGE_TABLE[stage].rank


@dataclass(frozen=True)
class LoadProgress:
    """Snapshot of every signal needed to classify load progress."""

    started_loading: bool = False
    early_context_present: bool = False
    early_context_loaded: bool = False
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    bootstrapped: bool = False
    entities_loaded: int = 0
    player_mesh_loaded: bool = False
    terrain_mesh_loaded: bool = False
    frames_rendered: int = 0

    def __post_init__(self) -> None:
        if self.entities_loaded < 0:
            raise ValueError("entities_loaded must be non-negative")
        if self.frames_rendered < 0:
            raise ValueError("frames_rendered must be non-negative")

    @classmethod
    def initial(cls) -> "LoadProgress":
        """Nothing has started yet."""
        return cls()

    @classmethod
    def reconnecting(cls) -> "LoadProgress":
        """Published while the loader waits to retry a failed attempt."""
        return cls(
            started_loading=True,
            early_context_present=True,
            early_context_loaded=True,
            connection_status=ConnectionStatus.RECONNECTING,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["connection_status"] = self.connection_status.value
        return data


class ProgressSummary(NamedTuple):
    stage: Stage
    description: str
    rank: int


def classify(progress: LoadProgress, required_frames: int = REQUIRED_FRAMES) -> Stage:
    """Map a snapshot to its stage. Pure: same snapshot, same stage."""
    if not progress.started_loading:
        return Stage.NO_PROGRESS
    if not progress.early_context_present:
        return Stage.NO_EARLY_CONTEXT
    if not progress.early_context_loaded:
        return Stage.EARLY_CONTEXT

    status = progress.connection_status
    if status in (ConnectionStatus.DISCONNECTED, ConnectionStatus.CLOSING):
        return Stage.BROKEN
    if status == ConnectionStatus.CONNECTING:
        return Stage.CONNECTING
    if status == ConnectionStatus.WAITING_ON_HEARTBEAT:
        return Stage.WAITING_FOR_HEARTBEAT
    if status in (
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.INTERRUPTED,
        ConnectionStatus.UNHEALTHY,
    ):
        return Stage.PROBLEMS_CONNECTING
    if status != ConnectionStatus.READY:
        raise ValueError(f"Unhandled connection status: {status!r}")

    if not progress.bootstrapped:
        return Stage.BOOTSTRAPPING
    if progress.entities_loaded == 0:
        return Stage.GAME_ENTITIES
    if not progress.player_mesh_loaded:
        return Stage.PLAYER_MESH
    if not progress.terrain_mesh_loaded:
        return Stage.TERRAIN_MESHING
    if progress.frames_rendered < required_frames:
        return Stage.SCENE_RENDERED
    return Stage.READY


def summarize(progress: LoadProgress, required_frames: int = REQUIRED_FRAMES) -> ProgressSummary:
    """Stage plus its loading-screen text and progress-bar rank."""
    stage = classify(progress, required_frames)
    info = STAGE_TABLE[stage]
    return ProgressSummary(stage, info.description, info.rank)


def extract_load_progress(
    early_context_loader: Optional[EarlyContextLoader],
    context: Optional[ClientContext],
) -> LoadProgress:
    """Read the current progress signals from the client's collaborators.

    Either collaborator may still be missing on early ticks. Errors raised
    while reading them propagate to the caller.
    """
    early = early_context_loader.context if early_context_loader is not None else None
    if early is not None:
        connection_status = ConnectionStatus(early.io.channel_stats.status)
        bootstrapped = bool(early.io.bootstrapped)
    else:
        connection_status = ConnectionStatus.DISCONNECTED
        bootstrapped = False

    if context is None:
        entities_loaded = 0
        player_mesh_loaded = False
        terrain_mesh_loaded = False
        frames_rendered = 0
    else:
        player_id = context.local_player_id()
        entities_loaded = context.entity_count()
        # Anonymous players have no mesh and no shards of their own to wait for
        player_mesh_loaded = not player_id or context.player_mesh_loaded(player_id)
        terrain_mesh_loaded = not player_id or context.all_player_shards_meshed()
        frames_rendered = context.rendered_frames()

    return LoadProgress(
        started_loading=True,
        early_context_present=early_context_loader is not None,
        early_context_loaded=bool(early_context_loader is not None and early_context_loader.loaded),
        connection_status=connection_status,
        bootstrapped=bootstrapped,
        entities_loaded=entities_loaded,
        player_mesh_loaded=bool(player_mesh_loaded),
        terrain_mesh_loaded=bool(terrain_mesh_loaded),
        frames_rendered=frames_rendered,
    )
