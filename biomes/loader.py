"""
Client bootstrap sequencer.

ClientLoader takes the client from nothing loaded to a rendered world:

1. Runs the early bootstrap (network session, auth, registries) under a
   global timeout.
2. Polls load progress in a background task, classifying each snapshot
   into a Stage and firing stage side effects (terrain meshing requests,
   faster polling while the first frames render).
3. Detects stalls and resolves with a partially loaded context rather than
   waiting forever.
4. Retries failed attempts a bounded number of times, and when retries run
   out prefers a degraded context over failing the load.

Usage:
    loader = ClientLoader(user_id, initialize_client, on_progress_update=ui.update)
    try:
        context = await loader.load()
    finally:
        await loader.stop()
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from biomes.config import LoaderConfig, get_loader_config
from biomes.cvals import make_cval_hook
from biomes.exceptions import (
    BootstrapTimeoutError,
    ConnectionBrokenError,
    ExhaustedRetriesError,
    LoaderStoppedError,
    StallError,
)
from biomes.load_progress import LoadProgress, Stage, classify, extract_load_progress
from biomes.logging_config import LogContext, get_logger
from biomes.protocols import (
    BootstrapHandle,
    ClientContext,
    ClientInitializer,
    EarlyContextLoader,
)
from biomes.tasks import BackgroundTaskController

logger = get_logger(__name__)

STARTUP_LOAD_CVAL = ("game", "startup_load_seconds")

ProgressCallback = Callable[[LoadProgress], None]


class LoaderState(str, Enum):
    """Lifecycle of a ClientLoader."""

    NOT_STARTED = "not_started"
    BOOTSTRAPPING = "bootstrapping"
    POLLING = "polling"
    READY = "ready"
    RETRYING = "retrying"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class LoadAttempt:
    """State owned by a single load attempt."""

    number: int
    started_at: float
    retries_used: int = 0
    context: Optional[ClientContext] = None
    cleanup: Optional[Callable[[], Awaitable[None]]] = None
    terrain_mesh_requested: bool = False
    mesh_task: Optional[asyncio.Task[None]] = None

    def set_context(self, context: ClientContext) -> None:
        if self.context is not None:
            raise RuntimeError(f"Context already assigned for load attempt {self.number}")
        self.context = context


class ClientLoader:
    """Drives one client session from bootstrap to a ready world."""

    def __init__(
        self,
        user_id: int,
        initialize: ClientInitializer,
        on_progress_update: Optional[ProgressCallback] = None,
        config_options: Optional[dict[str, Any]] = None,
        config: Optional[LoaderConfig] = None,
    ):
        self.user_id = user_id
        self.config = config or get_loader_config()
        self.retries_used = 0
        self.load_duration_seconds: Optional[float] = None
        self.last_progress = LoadProgress.initial()
        self._initialize = initialize
        self._on_progress_update = on_progress_update
        self._config_options = config_options
        self._controller = BackgroundTaskController()
        self._stop_event = asyncio.Event()
        self._attempt: Optional[LoadAttempt] = None
        self._state = LoaderState.NOT_STARTED

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def context(self) -> Optional[ClientContext]:
        return self._attempt.context if self._attempt is not None else None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def load(self) -> ClientContext:
        """Load the client, retrying failed attempts.

        Returns:
            The client context once the world is ready, or the context of
            the last attempt when progress stalled or retries ran out.

        Raises:
            ExhaustedRetriesError: Every attempt failed and none produced a context.
            LoaderStoppedError: stop() was called before loading finished.
        """
        if self.stopped:
            raise LoaderStoppedError()
        if self._state != LoaderState.NOT_STARTED:
            raise RuntimeError(f"ClientLoader.load() already called (state: {self._state.value})")

        load_start = time.monotonic()
        max_retries = self.config.max_load_retries
        while True:
            attempt = LoadAttempt(
                number=self.retries_used + 1,
                started_at=time.monotonic(),
                retries_used=self.retries_used,
            )
            self._attempt = attempt
            with LogContext(user_id=self.user_id, load_attempt=attempt.number):
                try:
                    context = await self._run_attempt(attempt)
                except LoaderStoppedError:
                    await self._teardown(attempt)
                    self._state = LoaderState.STOPPED
                    raise
                except Exception as e:
                    failure = e
                else:
                    self._finish(load_start)
                    return context

                if self.stopped:
                    await self._teardown(attempt)
                    self._state = LoaderState.STOPPED
                    raise LoaderStoppedError() from failure

                logger.error(
                    "Error during client loading",
                    error=str(failure),
                    error_type=type(failure).__name__,
                )
                if self.retries_used < max_retries:
                    self.retries_used += 1
                    self._state = LoaderState.RETRYING
                    logger.warning(f"Load failed, retrying ({self.retries_used}/{max_retries})...")
                    await self._teardown(attempt)
                    self._publish(LoadProgress.reconnecting())
                    try:
                        await self._sleep_unless_stopped(self.config.load_retry_delay_ms / 1000)
                    except LoaderStoppedError:
                        self._state = LoaderState.STOPPED
                        raise
                    continue

                if attempt.context is not None:
                    logger.error("Load failed after maximum retries, attempting to continue")
                    self._finish(load_start)
                    return attempt.context

                self._state = LoaderState.FAILED
                await self._teardown(attempt)
                raise ExhaustedRetriesError(self.retries_used + 1, str(failure)) from failure

    async def stop(self) -> None:
        """Cancel loading and tear down the bootstrap. Safe to call twice."""
        if self.stopped:
            return
        self._stop_event.set()
        self._state = LoaderState.STOPPED
        await self._controller.abort_and_wait()
        if self._attempt is not None:
            await self._teardown(self._attempt)

    async def _run_attempt(self, attempt: LoadAttempt) -> ClientContext:
        self._state = LoaderState.BOOTSTRAPPING
        timeout_seconds = self.config.bootstrap_timeout_ms / 1000
        deadline = attempt.started_at + timeout_seconds

        init_task = asyncio.ensure_future(self._initialize(self.user_id, self._config_options))
        try:
            done = await self._wait_first(init_task, timeout=self._remaining(deadline))
            if not done:
                raise BootstrapTimeoutError(timeout_seconds)
            handle: BootstrapHandle = init_task.result()
        finally:
            await _cancel_and_wait(init_task)
        attempt.cleanup = handle.stop

        self._state = LoaderState.POLLING
        poll_task = self._controller.run_in_background(
            "checkProgress", self._check_progress(handle.early_context_loader, attempt)
        )
        start_task = asyncio.ensure_future(handle.start())
        try:
            done = await self._wait_first(start_task, poll_task, timeout=self._remaining(deadline))
            if not done:
                raise BootstrapTimeoutError(timeout_seconds)
            if start_task in done:
                attempt.set_context(start_task.result())
                logger.debug("Client context started")
            # The poll task reports the outcome of the attempt
            if not poll_task.done():
                await self._wait_first(poll_task)
            if poll_task.cancelled():
                raise LoaderStoppedError()
            return poll_task.result()
        finally:
            await _cancel_and_wait(start_task)
            await self._controller.cancel(poll_task)

    async def _check_progress(
        self, early_context_loader: EarlyContextLoader, attempt: LoadAttempt
    ) -> ClientContext:
        """Poll until the world is ready, stalls, or breaks."""
        poll_rate_ms = self.config.poll_rate_ms
        stuck_ticks = 0
        last_classification: Optional[str] = None

        while True:
            await asyncio.sleep(poll_rate_ms / 1000)

            try:
                progress = extract_load_progress(early_context_loader, attempt.context)
                stage = classify(progress, self.config.required_frames)
            except Exception as e:
                logger.warning(f"Failed to read load progress: {type(e).__name__}: {e}")
                raise

            if stage == Stage.BROKEN:
                raise ConnectionBrokenError(progress.connection_status.value)

            classification = stage.value
            if classification == last_classification:
                stuck_ticks += 1
            else:
                stuck_ticks = 1
                last_classification = classification

            if stuck_ticks > self.config.stall_threshold_ticks:
                if attempt.context is not None:
                    logger.warning(
                        "Progress appears to be stuck, continuing with partially loaded context",
                        stage=classification,
                        ticks=stuck_ticks,
                    )
                    self._publish(progress)
                    return attempt.context
                raise StallError(classification, stuck_ticks)

            if stage == Stage.TERRAIN_MESHING:
                self._request_terrain_mesh(attempt)
            elif stage == Stage.SCENE_RENDERED:
                poll_rate_ms = self.config.render_poll_rate_ms
            elif stage == Stage.READY and attempt.context is not None:
                self._publish(progress)
                return attempt.context

            self._publish(progress)

    def _request_terrain_mesh(self, attempt: LoadAttempt) -> None:
        if attempt.terrain_mesh_requested or attempt.context is None:
            return
        attempt.terrain_mesh_requested = True
        try:
            request = attempt.context.trigger_player_shards_mesh()
        except Exception as e:
            logger.warning(f"Failed to request terrain meshing: {type(e).__name__}: {e}")
            return
        attempt.mesh_task = self._controller.run_in_background(
            "triggerPlayerShardsMesh", _await(request), log_errors=True
        )

    async def _wait_first(
        self, *tasks: asyncio.Future[Any], timeout: Optional[float] = None
    ) -> set[asyncio.Future[Any]]:
        """Wait for the first of `tasks` to finish.

        Returns the finished tasks, or an empty set on timeout.

        Raises:
            LoaderStoppedError: stop() was called and none of `tasks` finished.
        """
        stop_waiter = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {*tasks, stop_waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            await _cancel_and_wait(stop_waiter)
        done.discard(stop_waiter)
        if not done and self.stopped:
            raise LoaderStoppedError()
        return done

    async def _sleep_unless_stopped(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise LoaderStoppedError()

    async def _teardown(self, attempt: LoadAttempt) -> None:
        """Run the attempt's bootstrap cleanup, at most once."""
        mesh_task, attempt.mesh_task = attempt.mesh_task, None
        if mesh_task is not None:
            await self._controller.cancel(mesh_task)
        cleanup, attempt.cleanup = attempt.cleanup, None
        if cleanup is None:
            return
        try:
            await cleanup()
        except Exception as e:
            logger.warning(f"Bootstrap cleanup failed: {type(e).__name__}: {e}")

    def _publish(self, progress: LoadProgress) -> None:
        self.last_progress = progress
        if self._on_progress_update is not None:
            self._on_progress_update(progress)

    def _finish(self, load_start: float) -> None:
        duration = time.monotonic() - load_start
        self.load_duration_seconds = duration
        self._state = LoaderState.READY
        make_cval_hook(
            STARTUP_LOAD_CVAL,
            "The time the user spent looking at the loading screen.",
            lambda: duration,
        )
        logger.info("Client loaded", duration_seconds=round(duration, 3), retries=self.retries_used)

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(0.0, deadline - time.monotonic())


async def _cancel_and_wait(task: asyncio.Future[Any]) -> None:
    if task.done():
        return
    task.cancel()
    await asyncio.wait({task})


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable
