"""
PlaybackScheduler - the single-stream request queue state machine.

Owns the pending queue, the item currently on air, the completion timer,
the standby (filler) fallback and auto-replenishment. Every move from one
item to the next goes through the transition procedure, which is guarded
by PlaybackState.is_transitioning so only one ever runs at a time.

Completion is detected by a timer armed for the probed duration plus a
configurable grace period. This is an approximation of the real end of
the media; an encoder crash is detected separately by a watcher task and
feeds the same transition procedure with reason "crashed".
"""

import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger

from jukebox.domain.ai.playlist import ReplenishProvider
from jukebox.domain.broadcast.process import BroadcastProcess, StreamHandle
from jukebox.domain.events import (
    ErrorEvent,
    EventBus,
    QueueAction,
    QueueEvent,
    SystemEvent,
    TransitionReason,
)
from jukebox.domain.exceptions import ConfigError, JukeboxError, ProcessFailure
from jukebox.domain.media.models import QueueItem
from jukebox.domain.media.resolver import MediaResolver

from .models import AutoReplenishConfig, PlaybackState, SchedulerStatus
from .persistence import StateStore

AUTO_REQUESTER = "AutoPlaylist"
FILLER_TITLE = "Standby"


class PlaybackScheduler:
    """Single-writer scheduler for one outbound stream.

    All public operations must be called from the event loop thread.
    """

    def __init__(
        self,
        resolver: MediaResolver,
        broadcast: BroadcastProcess,
        bus: Optional[EventBus] = None,
        *,
        filler_path: Optional[Path] = None,
        completion_grace: float = 2.0,
        resume_delay: float = 5.0,
        crash_retry_delay: float = 2.0,
        store: Optional[StateStore] = None,
        replenish: Optional[ReplenishProvider] = None,
        auto_batch_size: int = 3,
    ):
        self.resolver = resolver
        self.broadcast = broadcast
        self.bus = bus
        self.filler_path = Path(filler_path).expanduser() if filler_path else None
        self.completion_grace = completion_grace
        self.resume_delay = resume_delay
        self.crash_retry_delay = crash_retry_delay
        self.store = store
        self.replenish = replenish

        self._state = PlaybackState()
        self._auto = AutoReplenishConfig(batch_size=auto_batch_size)
        self._default_batch_size = auto_batch_size

        self._timer: Optional[asyncio.TimerHandle] = None
        self._timer_generation = 0
        self._live_handle: Optional[StreamHandle] = None
        self._transition_task: Optional[asyncio.Task] = None
        self._resume_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._rerun = False
        self._stop_requested = False
        self._closing = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def status(self) -> SchedulerStatus:
        return self._state.status

    @property
    def is_transitioning(self) -> bool:
        return self._state.is_transitioning

    def get_queue(self) -> list[QueueItem]:
        return list(self._state.queue)

    def get_current(self) -> Optional[QueueItem]:
        """The real item on air; None while filler plays or nothing does."""
        if self._state.is_filler:
            return None
        return self._state.current

    def is_filler(self) -> bool:
        return self._state.is_filler

    @property
    def last_played(self) -> Optional[str]:
        return self._state.last_played

    def auto_replenish_info(self) -> dict:
        return self._auto.info()

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def enqueue(self, item: QueueItem, requester: Optional[str] = None) -> QueueItem:
        """Append an item and start it right away if nothing real is playing.

        Never waits for the transition. If one is already running, a
        re-evaluation is scheduled for when it finishes.

        Returns:
            The queued item (attributed to requester)
        """
        if requester:
            item = item.with_requester(requester)

        self._state.queue.append(item)
        if self._state.status == SchedulerStatus.STOPPED:
            self._state.status = SchedulerStatus.IDLE
        self._persist()

        logger.info(f"Queued: {item.title} (requested by {item.requested_by or 'unknown'})")
        self._publish_queue(
            QueueAction.ENQUEUED, f"Queued: {item.title}", item=item.to_dict()
        )

        if self._state.is_transitioning:
            self._rerun = True
        elif self._state.current is None:
            # Nothing real on air (idle or filler): requests never wait behind filler
            self._spawn_transition(TransitionReason.ENQUEUED)

        return item

    async def skip(self) -> bool:
        """End the current item (or filler) now and move on.

        Returns:
            False when dropped: a transition is in flight, or nothing is on air
        """
        if self._state.is_transitioning:
            logger.info("Skip ignored: transition in progress")
            return False
        if self._state.current is None and not self._state.is_filler:
            logger.info("Skip ignored: nothing is playing")
            return False

        skipped = self._state.current
        if skipped is not None:
            logger.info(f"Skipping: {skipped.title}")
            self._publish_queue(
                QueueAction.SKIPPED, f"Skipped: {skipped.title}", item=skipped.to_dict()
            )

        self._cancel_timer()
        self._spawn_transition(TransitionReason.SKIPPED)
        await self.wait_for_transition()
        return True

    async def stop(self) -> None:
        """Stop playback, clear the queue and disable auto-replenish.

        An in-flight transition is aborted at its next suspension point and
        awaited before the process is stopped. Idempotent.
        """
        self._stop_requested = True
        self._rerun = False
        try:
            self._cancel_resume()
            task = self._transition_task
            if task is not None:
                await asyncio.wait({task})

            self._cancel_timer()
            self._live_handle = None
            await self.broadcast.stop()

            self._state.queue.clear()
            self._state.current = None
            self._state.is_filler = False
            self._state.status = SchedulerStatus.STOPPED
            self._auto.enabled = False
            self._auto.played.clear()
            self._persist()
        finally:
            self._stop_requested = False

        logger.info("Playback stopped and queue cleared")
        self._publish_queue(QueueAction.CLEARED, "Stopped and cleared queue")

    def remove_from_queue(self, index: int) -> bool:
        """Remove a pending item by position. Out-of-range indexes return False."""
        if index < 0 or index >= len(self._state.queue):
            return False

        item = self._state.queue[index]
        del self._state.queue[index]
        self._persist()

        logger.info(f"Removed from queue: {item.title}")
        self._publish_queue(QueueAction.REMOVED, f"Removed: {item.title}", item=item.to_dict())
        return True

    # ------------------------------------------------------------------
    # Auto-replenish
    # ------------------------------------------------------------------

    def enable_auto_replenish(self, description: str, batch_size: Optional[int] = None) -> None:
        """Turn on auto-playlists. Takes effect at the next transition.

        Raises:
            ConfigError: Empty description or batch_size below 1
        """
        if not description or not description.strip():
            raise ConfigError("Auto-playlist description must not be empty")
        if batch_size is None:
            batch_size = self._default_batch_size
        if batch_size < 1:
            raise ConfigError("Auto-playlist batch size must be at least 1")
        if self.replenish is None:
            logger.warning("Auto-playlist enabled without a playlist provider; it will not run")

        self._auto.enabled = True
        self._auto.description = description.strip()
        self._auto.batch_size = batch_size
        self._auto.played.clear()
        self._persist()
        logger.info(f'Auto-playlist enabled: "{self._auto.description}" ({batch_size} songs per batch)')

    def disable_auto_replenish(self) -> None:
        self._auto.enabled = False
        self._auto.played.clear()
        self._persist()
        logger.info("Auto-playlist disabled")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Restore the persisted queue and begin playback.

        An item interrupted by the previous shutdown goes back to the front
        of the queue. A restored queue resumes after resume_delay; with
        nothing to resume the transition runs immediately (filler or
        auto-replenish).
        """
        self._closing = False
        snapshot = self.store.load() if self.store else None

        if snapshot is not None:
            self._state.queue.extend(snapshot.pending_queue)
            if snapshot.current is not None:
                self._state.queue.appendleft(snapshot.current)
            self._state.last_played = snapshot.last_played
            if snapshot.auto_enabled and snapshot.auto_description:
                self._auto.enabled = True
                self._auto.description = snapshot.auto_description
                self._auto.batch_size = snapshot.auto_batch_size or self._default_batch_size

        if self._state.queue:
            count = len(self._state.queue)
            logger.info(f"Restored {count} queued item(s); resuming in {self.resume_delay}s")
            self._publish(
                SystemEvent(message=f"Restored {count} queued item(s) from previous session")
            )
            self._persist()
            self._resume_task = self._track(asyncio.create_task(self._resume_later()))
        else:
            self._spawn_transition(TransitionReason.RESUMED)
            await self.wait_for_transition()

    async def shutdown(self) -> None:
        """Stop the process and timers but keep the queue persisted.

        The item on air stays recorded as current so the next start() puts
        it back at the front of the queue.
        """
        self._closing = True
        self._rerun = False
        self._cancel_resume()

        task = self._transition_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        # A task cancelled before its first step never runs its cleanup
        self._state.is_transitioning = False
        self._transition_task = None

        self._cancel_timer()
        self._live_handle = None
        for pending in list(self._tasks):
            pending.cancel()
        if self._tasks:
            await asyncio.wait(set(self._tasks))

        await self.broadcast.stop()
        self._persist()
        logger.info("Scheduler shut down")

    async def wait_for_transition(self) -> None:
        """Wait for the in-flight transition (if any) to finish."""
        task = self._transition_task
        if task is not None:
            await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Transition procedure
    # ------------------------------------------------------------------

    def _spawn_transition(self, reason: TransitionReason) -> None:
        if self._state.is_transitioning:
            self._rerun = True
            return
        # Set synchronously so a second caller in the same loop tick sees it
        self._state.is_transitioning = True
        self._transition_task = self._track(asyncio.create_task(self._run_transition(reason)))

    async def _run_transition(self, reason: TransitionReason) -> None:
        try:
            await self._transition(reason)
        except Exception as e:
            # Leave a state the next enqueue can recover from
            logger.opt(exception=e).error(f"Transition ({reason.value}) failed: {e}")
            self._state.current = None
            self._state.is_filler = False
            self._state.status = SchedulerStatus.IDLE
            self._persist()
        finally:
            self._state.is_transitioning = False
            self._transition_task = None
            rerun, self._rerun = self._rerun, False

        if (
            rerun
            and not self._aborted()
            and self._state.current is None
            and self._state.queue
        ):
            self._spawn_transition(TransitionReason.ENQUEUED)

    def _aborted(self) -> bool:
        return self._stop_requested or self._closing

    async def _transition(self, reason: TransitionReason) -> None:
        self._cancel_timer()
        self._live_handle = None
        await self.broadcast.stop()

        self._state.current = None
        self._state.is_filler = False
        if self._aborted():
            return

        replenished = False
        while True:
            if not self._state.queue and not replenished and self._can_replenish():
                # At most once per run so an unproductive provider can't spin
                replenished = True
                await self._replenish()
                if self._aborted():
                    return

            if not self._state.queue:
                break

            item = self._state.queue.popleft()
            self._state.current = item
            self._persist()

            try:
                launched = await self._launch(item)
            except Exception as e:
                # Whatever the cause, only this item is lost
                self._log_failure(f"Failed to play {item.title}", e)
                self._publish(
                    ErrorEvent(
                        message=f"Failed to play {item.title}: {e}",
                        source="scheduler",
                        item=item.to_dict(),
                    )
                )
                self._state.current = None
                self._persist()
                if self._aborted():
                    return
                reason = TransitionReason.FAILED
                continue

            if launched is None or self._aborted():
                return

            handle, duration = launched
            self._state.status = SchedulerStatus.PLAYING_ITEM
            self._state.last_played = item.key
            self._arm_timer(duration + self.completion_grace)
            self._watch(handle)
            self._persist()

            logger.info(
                f"Now playing: {item.title} ({duration:.0f}s, reason: {reason.value})"
            )
            self._publish_queue(
                QueueAction.PLAYING,
                f"Now playing: {item.title}",
                item=item.to_dict(),
                reason=reason,
            )
            return

        await self._start_filler()

    async def _launch(self, item: QueueItem) -> Optional[tuple[StreamHandle, float]]:
        """Resolve, probe and start item. None if stop/shutdown intervened."""
        file_path = await self.resolver.ensure(item)
        if self._aborted():
            return None
        duration = await self.resolver.duration(file_path)
        if self._aborted():
            return None
        handle = await self.broadcast.start(file_path, loop=False, title=item.title)
        return handle, duration

    async def _start_filler(self) -> None:
        if self.filler_path is None:
            self._go_idle("Queue empty, no standby configured")
            return

        if not self.filler_path.is_file():
            self._publish(
                ErrorEvent(message=f"Standby asset not found: {self.filler_path}", source="scheduler")
            )
            self._go_idle(f"Standby asset not found: {self.filler_path}")
            return

        try:
            handle = await self.broadcast.start(self.filler_path, loop=True, title=FILLER_TITLE)
        except Exception as e:
            self._log_failure("Failed to start standby", e)
            self._publish(ErrorEvent(message=f"Failed to start standby: {e}", source="scheduler"))
            self._go_idle("Standby failed to start")
            return

        if self._aborted():
            return

        self._state.is_filler = True
        self._state.status = SchedulerStatus.PLAYING_FILLER
        self._watch(handle)
        self._persist()

        logger.info(f"Queue empty, playing standby: {self.filler_path.name}")
        self._publish_queue(QueueAction.FILLER, f"Playing standby: {self.filler_path.name}")

    @staticmethod
    def _log_failure(message: str, error: Exception) -> None:
        if isinstance(error, JukeboxError):
            logger.error(f"{message}: {error}")
        else:
            logger.opt(exception=error).error(f"{message}: unexpected {type(error).__name__}: {error}")

    def _go_idle(self, message: str) -> None:
        self._state.status = SchedulerStatus.IDLE
        self._persist()
        logger.info(message)

    def _can_replenish(self) -> bool:
        return self._auto.enabled and self.replenish is not None and bool(self._auto.description)

    async def _replenish(self) -> None:
        description = self._auto.description
        batch_size = self._auto.batch_size
        logger.info(f'Auto-generating more songs for: "{description}"')
        self._publish_queue(
            QueueAction.AUTO_GENERATING, f'Auto-generating songs for "{description}"'
        )

        try:
            # A few extra so already-played songs can be filtered out
            songs = await self.replenish.generate(description, batch_size + 2)
        except Exception as e:
            self._log_failure("Auto-playlist generation failed", e)
            self._publish(ErrorEvent(message=f"Auto-playlist failed: {e}", source="ai"))
            return

        added = 0
        for song in songs:
            if added >= batch_size or self._aborted():
                break
            if song.search_query in self._auto.played:
                logger.debug(f"Skipping already played: {song.search_query}")
                continue

            item = await self.resolver.search(song.search_query)
            if item is None:
                logger.warning(f"No search result for: {song.search_query}")
                continue
            if self._aborted():
                break

            item = item.with_requester(AUTO_REQUESTER)
            self._auto.played.add(song.search_query)
            self._state.queue.append(item)
            added += 1
            logger.info(f"Auto-queued: {item.title}")
            self._publish_queue(QueueAction.ENQUEUED, f"Auto-queued: {item.title}", item=item.to_dict())

        self._persist()
        logger.info(f"Auto-playlist added {added} song(s)")

    # ------------------------------------------------------------------
    # Timer and crash watcher
    # ------------------------------------------------------------------

    def _arm_timer(self, delay: float) -> None:
        self._cancel_timer()
        generation = self._timer_generation
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer, generation)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._timer_generation += 1

    def _on_timer(self, generation: int) -> None:
        if generation != self._timer_generation:
            return
        self._timer = None
        if self._aborted():
            return
        finished = self._state.current
        if finished is not None:
            logger.info(f"Finished: {finished.title}")
        self._spawn_transition(TransitionReason.COMPLETED)

    def _watch(self, handle: StreamHandle) -> None:
        self._live_handle = handle
        self._track(asyncio.create_task(self._watch_exit(handle)))

    async def _watch_exit(self, handle: StreamHandle) -> None:
        try:
            outcome = await handle.wait()
        except ProcessFailure as e:
            message = f"Broadcast process crashed: {e}"
            detail = e.stderr_tail
        else:
            # A finite item exiting cleanly is left to the completion timer
            if outcome.stopped or not handle.loop:
                return
            message = f"Looping broadcast exited unexpectedly (code {outcome.returncode})"
            detail = handle.title

        if handle is not self._live_handle:
            return
        logger.error(f"{message} ({detail})")
        self._publish(
            ErrorEvent(
                message=message,
                source="broadcast",
                item=self._state.current.to_dict() if self._state.current else None,
            )
        )

        await asyncio.sleep(self.crash_retry_delay)
        if handle is not self._live_handle or self._aborted():
            return

        self._cancel_timer()
        self._spawn_transition(TransitionReason.CRASHED)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _cancel_resume(self) -> None:
        if self._resume_task is not None and not self._resume_task.done():
            self._resume_task.cancel()
        self._resume_task = None

    async def _resume_later(self) -> None:
        await asyncio.sleep(self.resume_delay)
        self._resume_task = None
        # An enqueue during the delay may already have started playback
        if self._state.current is None and not self._state.is_transitioning:
            self._spawn_transition(TransitionReason.RESUMED)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Scheduler task failed: {exc}")

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self._state, self._auto)

    def _publish(self, event) -> None:
        if self.bus is not None:
            self.bus.publish(event)

    def _publish_queue(
        self,
        action: QueueAction,
        message: str,
        item: Optional[dict] = None,
        reason: Optional[TransitionReason] = None,
    ) -> None:
        self._publish(
            QueueEvent(
                message=message,
                action=action,
                item=item,
                reason=reason,
                queue_length=len(self._state.queue),
            )
        )
