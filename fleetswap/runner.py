"""
Lifecycle shared by the copy-trade monitor and the bundle/volume bots.

Each runner owns its BotState and a stop event. Sleeps wait on the event so
stop() takes effect at the next suspension point; in-flight swaps always run
to completion.
"""

import asyncio
from typing import Optional
import structlog

from .errors import BotAlreadyRunning
from .events import EventBus, BOT_STATE_CHANGED
from .models import BotState, BotStatus, BotMode, now_ms
from .notifier import TelegramNotifier

logger = structlog.get_logger(__name__)


class BotRunner:
    """Base class: state snapshot, events and cooperative cancellation."""

    mode: BotMode

    def __init__(self, events: Optional[EventBus] = None, notifier: Optional[TelegramNotifier] = None):
        self.events = events
        self.notifier = notifier
        self._state = BotState(mode=self.mode)
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> BotState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state.status == BotStatus.RUNNING

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def _update_state(self, **changes) -> None:
        for key, value in changes.items():
            setattr(self._state, key, value)
        if self.events:
            self.events.emit(BOT_STATE_CHANGED, self._state.to_dict())

    def _begin(self, total_rounds: int = 0) -> None:
        if self.running or (self._task is not None and not self._task.done()):
            raise BotAlreadyRunning(f"{self.mode.value} bot is already running")
        self._stop_event = asyncio.Event()
        self._update_state(
            status=BotStatus.RUNNING,
            current_round=0,
            total_rounds=total_rounds,
            trades_completed=0,
            trades_failed=0,
            started_at=now_ms(),
            error=None,
        )

    def _fail(self, error: str) -> None:
        logger.error("bot_error", mode=self.mode.value, error=error)
        self._update_state(status=BotStatus.ERROR, error=error)
        if self.notifier:
            self._spawn_notification(self.notifier.notify_bot_error(self.mode.value, error))

    def _spawn_notification(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        task.add_done_callback(_log_notification_failure)

    def _launch(self, coro) -> asyncio.Task:
        self._task = asyncio.create_task(coro, name=f"{self.mode.value}-bot")
        if self.notifier:
            self._spawn_notification(self.notifier.notify_bot_started(self.mode.value))
        logger.info("bot_started", mode=self.mode.value)
        return self._task

    def _finish(self) -> None:
        """Loop exited normally or by stop request."""
        if self._state.status != BotStatus.ERROR:
            self._update_state(status=BotStatus.IDLE)
        if self.notifier:
            self._spawn_notification(self.notifier.notify_bot_stopped(self.mode.value))
        logger.info(
            "bot_stopped",
            mode=self.mode.value,
            completed=self._state.trades_completed,
            failed=self._state.trades_failed,
        )

    async def sleep(self, ms: float) -> bool:
        """Sleep up to `ms`; returns True if a stop was requested."""
        if ms <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=ms / 1000)
        except asyncio.TimeoutError:
            pass
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request a stop. Idempotent; never cancels an in-flight swap."""
        if self.running:
            self._update_state(status=BotStatus.STOPPING)
        self._stop_event.set()

    async def wait(self) -> None:
        """Wait for the loop task to exit."""
        if self._task is not None:
            await self._task


def _log_notification_failure(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning("notification_failed", error=str(task.exception()))
