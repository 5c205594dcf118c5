"""
Timing model for the Speed Math drill game.
Handles the difficulty multiplier, the decaying countdown, and the tick
sources that drive it.
"""
import asyncio
import logging
import time
from typing import Callable, Optional, Any

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for ticker lifecycle events."""

    @staticmethod
    def log_ticker_start(owner: str, session_id: int, interval: float) -> None:
        """Log ticker start with structured data."""
        logger.info(
            f"Timer lifecycle: TICKER_START - Owner {owner}, Session {session_id}, Interval {interval:.3f}s",
            extra={
                'event_type': 'ticker_start',
                'owner': owner,
                'session_id': session_id,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_ticker_stop(owner: str, session_id: Optional[int], reason: str) -> None:
        """Log ticker stop (pause, game over, abandon or restart)."""
        logger.info(
            f"Timer lifecycle: TICKER_STOP - Owner {owner}, Session {session_id}, Reason {reason}",
            extra={
                'event_type': 'ticker_stop',
                'owner': owner,
                'session_id': session_id,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timeout(owner: str, session_id: int, difficulty_scale: float) -> None:
        """Log a countdown expiry."""
        logger.debug(
            f"Timer lifecycle: TIMEOUT - Owner {owner}, Session {session_id}, Scale {difficulty_scale:.2f}",
            extra={
                'event_type': 'countdown_timeout',
                'owner': owner,
                'session_id': session_id,
                'difficulty_scale': difficulty_scale,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_stale_tick(owner: str, expected_session: int, received_session: int) -> None:
        """Log a tick that arrived for a session that is no longer live."""
        logger.warning(
            f"Timer lifecycle: STALE_TICK - Owner {owner}, expected session {expected_session}, "
            f"got {received_session}",
            extra={
                'event_type': 'ticker_stale_tick',
                'owner': owner,
                'expected_session': expected_session,
                'received_session': received_session,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_ticker_error(owner: str, error_type: str, error_message: str, operation: str) -> None:
        """Log ticker-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Owner {owner}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'ticker_error',
                'owner': owner,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class DifficultyController:
    """Tracks the speed multiplier applied to the countdown decay."""

    def __init__(self, step: float = 0.05, ceiling: float = 3.0):
        self.step = step
        self.ceiling = ceiling
        self._scale = 1.0

    def reset(self) -> None:
        """Return to the starting multiplier for a new session."""
        self._scale = 1.0

    def record_correct(self) -> float:
        """
        Raise the multiplier after a correct answer.

        Returns:
            New multiplier, never above the ceiling
        """
        self._scale = min(self._scale + self.step, self.ceiling)
        return self._scale

    @property
    def scale(self) -> float:
        """Get the current multiplier."""
        return self._scale


class Countdown:
    """
    Bounded countdown decremented once per tick.

    A tick that finds the countdown already at or below zero reports a
    timeout instead of decrementing; the caller must reset it before the
    next tick.
    """

    def __init__(self, max_time: float = 100.0, base_decay_rate: float = 0.8):
        self.max_time = max_time
        self.base_decay_rate = base_decay_rate
        self._remaining = max_time

    def reset(self) -> None:
        """Refill the countdown."""
        self._remaining = self.max_time

    def advance(self, difficulty_scale: float) -> bool:
        """
        Apply one tick of decay.

        Args:
            difficulty_scale: Multiplier on the base decay rate

        Returns:
            True if the countdown had expired (timeout), False otherwise
        """
        if self._remaining <= 0:
            return True
        self._remaining = max(0.0, self._remaining - self.base_decay_rate * difficulty_scale)
        return False

    @property
    def remaining(self) -> float:
        """Get the remaining time."""
        return self._remaining

    @property
    def is_expired(self) -> bool:
        """Check if the countdown has run out."""
        return self._remaining <= 0


TickCallback = Callable[[int], Any]


class AsyncTicker:
    """Calls a tick callback on a fixed cadence from an asyncio task."""

    def __init__(self, owner: str = None):
        """Initialize the ticker."""
        self._task: Optional[asyncio.Task] = None
        self._owner = owner
        self._session_id: Optional[int] = None

    def start(self, callback: TickCallback, interval: float, session_id: int) -> bool:
        """
        Start ticking for a session, replacing any previous schedule.

        Args:
            callback: Called every interval with the session id it was started for
            interval: Seconds between ticks
            session_id: Identity of the session the ticks belong to

        Returns:
            True if the ticker started, False if no event loop is running
        """
        self.stop("restart")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            TimerLifecycleLogger.log_ticker_error(
                self._owner,
                "no_event_loop",
                "AsyncTicker requires a running event loop",
                "start"
            )
            return False

        self._session_id = session_id
        self._task = loop.create_task(self._run(callback, interval, session_id))
        TimerLifecycleLogger.log_ticker_start(self._owner, session_id, interval)
        return True

    async def _run(self, callback: TickCallback, interval: float, session_id: int) -> None:
        """Tick until cancelled; a failing callback is logged and ticking continues."""
        while True:
            await asyncio.sleep(interval)
            try:
                callback(session_id)
            except Exception as e:
                TimerLifecycleLogger.log_ticker_error(
                    self._owner,
                    "tick_callback_error",
                    str(e),
                    "_run"
                )

    def stop(self, reason: str = "stop requested") -> None:
        """Cancel the tick task if one is scheduled."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        TimerLifecycleLogger.log_ticker_stop(self._owner, self._session_id, reason)
        self._task = None
        self._session_id = None

    @property
    def is_running(self) -> bool:
        """Check if ticks are scheduled."""
        return self._task is not None and not self._task.done()


class ManualTicker:
    """Tick source that only fires when told to; a deterministic fake clock."""

    def __init__(self, owner: str = None):
        self._owner = owner
        self._callback: Optional[TickCallback] = None
        self._session_id: Optional[int] = None
        self.interval: Optional[float] = None
        self.start_count = 0
        self.stop_count = 0

    def start(self, callback: TickCallback, interval: float, session_id: int) -> bool:
        self._callback = callback
        self._session_id = session_id
        self.interval = interval
        self.start_count += 1
        return True

    def stop(self, reason: str = "stop requested") -> None:
        if self._callback is not None:
            self.stop_count += 1
        self._callback = None
        self._session_id = None

    def fire(self, count: int = 1) -> int:
        """
        Deliver up to count ticks, stopping early if the ticker is stopped.

        Returns:
            Number of ticks actually delivered
        """
        fired = 0
        for _ in range(count):
            if self._callback is None:
                break
            self._callback(self._session_id)
            fired += 1
        return fired

    @property
    def session_id(self) -> Optional[int]:
        return self._session_id

    @property
    def is_running(self) -> bool:
        return self._callback is not None
