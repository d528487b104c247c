"""Duration tracker with a one-shot warning and a one-shot auto-stop."""

import asyncio
import inspect
import logging
from typing import Optional, Callable, Any

from ..models.capture import CaptureState, DurationStatus
from ..models.errors import StateTransitionError
from ..models.events import CaptureStateEvent, DurationWarningEvent
from ..services.event_publisher import SessionEventPublisher, TOPIC_CAPTURE_STATE
from ..state.session_store import SessionStateStore

logger = logging.getLogger(__name__)

WARNING_THRESHOLD_PERCENT = 0.8


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class DurationTracker:
    """Drives a periodic tick that accrues elapsed seconds in the session store.

    The tick runs only while capturing. On every tick two thresholds are
    evaluated: the warning (80% of the budget) latched through the store's
    ``warning_fired`` flag, and the maximum, latched locally, which invokes
    ``on_auto_stop`` exactly once per session.
    """

    def __init__(
        self,
        store: SessionStateStore,
        publisher: SessionEventPublisher,
        budget_seconds: int,
        on_auto_stop: Optional[Callable[[], Any]] = None,
        tick_interval: float = 1.0,
    ):
        """Initialize duration tracker.

        Args:
            store: Session store holding elapsed seconds and the warning latch
            publisher: Publisher to follow capture transitions and emit warnings
            budget_seconds: Maximum recording duration
            on_auto_stop: Called once when the budget is reached; may return an awaitable
            tick_interval: Seconds between ticks
        """
        if budget_seconds <= 0:
            raise ValueError("budget_seconds must be positive")
        self.store = store
        self.publisher = publisher
        self.on_auto_stop = on_auto_stop
        self.tick_interval = tick_interval
        self._budget_seconds = int(budget_seconds)

        self._task: Optional[asyncio.Task] = None
        self._paused = False
        self._session_active = False
        self._auto_stop_fired = False
        self._auto_stop_task: Optional[asyncio.Future] = None
        # Progress towards the next tick made before a pause
        self._carried = 0.0
        self._sleep_started: Optional[float] = None

        self.publisher.subscribe(self._on_capture_state, TOPIC_CAPTURE_STATE)

    @property
    def budget_seconds(self) -> int:
        return self._budget_seconds

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def auto_stop_pending(self) -> bool:
        """True while an awaitable auto-stop callback is still running."""
        return self._auto_stop_task is not None and not self._auto_stop_task.done()

    def set_budget(self, budget_seconds: int) -> None:
        """Change the budget; only allowed between sessions."""
        if self._session_active:
            raise StateTransitionError("Recording budget cannot change during a session")
        if budget_seconds <= 0:
            raise ValueError("budget_seconds must be positive")
        self._budget_seconds = int(budget_seconds)
        logger.info(f"Recording budget set to {self._budget_seconds}s")

    def start(self) -> None:
        """Start timing a new session."""
        self._cancel_tick()
        self._paused = False
        self._carried = 0.0
        self._session_active = True
        self._auto_stop_fired = False
        self._schedule_tick()
        logger.debug("Duration timer started")

    def pause(self) -> None:
        self._paused = True
        self._carry_partial_tick()
        self._cancel_tick()

    def resume(self) -> None:
        if not self._session_active:
            return
        self._paused = False
        self._schedule_tick()

    def stop(self) -> None:
        """Stop timing; the elapsed value stays frozen in the store."""
        self._cancel_tick()
        self._paused = False
        self._carried = 0.0
        self._session_active = False

    def close(self) -> None:
        """Teardown: cancel the tick and stop following capture events."""
        self.stop()
        task, self._auto_stop_task = self._auto_stop_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self.publisher.unsubscribe(self._on_capture_state, TOPIC_CAPTURE_STATE)

    def tick(self) -> DurationStatus:
        """Advance elapsed time by one second unless paused, then evaluate thresholds."""
        if not self._paused:
            self.store.increment_elapsed_seconds()
        return self.evaluate()

    def evaluate(self) -> DurationStatus:
        """Evaluate warning and maximum thresholds, firing each latch at most once."""
        status = self.status()

        if status.show_warning and not self.store.capture.warning_fired:
            self.store.set_warning_fired(True)
            logger.info(f"Duration warning: {status.formatted_remaining} remaining")
            self.publisher.publish_duration_warning(DurationWarningEvent(
                elapsed_seconds=status.elapsed_seconds,
                remaining_seconds=status.remaining_seconds,
                budget_seconds=self._budget_seconds,
            ))

        if status.max_reached and not self._auto_stop_fired:
            self._auto_stop_fired = True
            self._cancel_tick()
            logger.info(f"Maximum duration of {self._budget_seconds}s reached, stopping capture")
            self._fire_auto_stop()

        return status

    def status(self) -> DurationStatus:
        elapsed = self.store.capture.elapsed_seconds
        return DurationStatus(
            elapsed_seconds=elapsed,
            remaining_seconds=max(0, self._budget_seconds - elapsed),
            show_warning=elapsed >= self._budget_seconds * WARNING_THRESHOLD_PERCENT,
            max_reached=elapsed >= self._budget_seconds,
        )

    def _on_capture_state(self, event: CaptureStateEvent) -> None:
        if event.current is CaptureState.CAPTURING:
            if event.previous is CaptureState.PAUSED:
                self.resume()
            else:
                self.start()
        elif event.current is CaptureState.PAUSED:
            self.pause()
        else:
            self.stop()

    def _fire_auto_stop(self) -> None:
        if self.on_auto_stop is None:
            return
        outcome = self.on_auto_stop()
        if inspect.isawaitable(outcome):
            self._auto_stop_task = asyncio.ensure_future(outcome)
            self._auto_stop_task.add_done_callback(self._auto_stop_done)

    def _auto_stop_done(self, task: asyncio.Future) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Auto-stop failed: {task.exception()!r}")

    def _carry_partial_tick(self) -> None:
        if not self.is_running or self._sleep_started is None:
            return
        partial = self._task.get_loop().time() - self._sleep_started
        self._carried = min(self._carried + partial, self.tick_interval)

    def _schedule_tick(self) -> None:
        if self.is_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; ticks must be driven manually")
            return
        self._task = loop.create_task(self._run())

    def _cancel_tick(self) -> None:
        self._sleep_started = None
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            self._sleep_started = loop.time()
            await asyncio.sleep(max(0.0, self.tick_interval - self._carried))
            self._carried = 0.0
            self._sleep_started = None
            self.tick()
            if self._auto_stop_fired or self._task is None:
                return
