"""
Countdown timing for the MCQ Quiz Bot.
Provides the per-question countdown timer and the scheduler it ticks on.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_armed(timer_label: str, duration: int) -> None:
        """Log a timer being seeded with a fresh countdown."""
        logger.info(
            f"Timer lifecycle: ARMED - Timer {timer_label}, Duration {duration}s",
            extra={
                'event_type': 'timer_armed',
                'timer_label': timer_label,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(timer_label: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Timer {timer_label}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'timer_label': timer_label,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(timer_label: str, completion_type: str, total_duration: int) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Timer {timer_label}, Type {completion_type}, Duration {total_duration}s",
            extra={
                'event_type': 'timer_completed',
                'timer_label': timer_label,
                'completion_type': completion_type,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(timer_label: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Timer {timer_label}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'timer_label': timer_label,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(timer_label: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Timer {timer_label}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'timer_label': timer_label,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class TickScheduler:
    """
    Schedules timer ticks on the running asyncio event loop.

    Any object with a compatible ``call_later`` can stand in for this class,
    as long as the returned handle has a ``cancel()`` method.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        """
        Run callback once after delay seconds.

        Args:
            delay: Seconds to wait
            callback: Zero-argument callable

        Returns:
            Cancellable handle for the scheduled call
        """
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class QuizTimer:
    """Countdown timer for a single question at a time."""

    def __init__(
        self,
        scheduler: Optional[TickScheduler] = None,
        tick_interval: float = 1.0,
        label: str = None
    ):
        """
        Initialize the timer.

        Args:
            scheduler: Tick scheduler, defaults to the asyncio-backed TickScheduler
            tick_interval: Seconds between ticks
            label: Name used in lifecycle logs
        """
        self._scheduler = scheduler or TickScheduler()
        self._tick_interval = tick_interval
        self._label = label or f"timer-{id(self):x}"
        self._handle = None
        self._remaining_time = 0
        self._total_duration = 0
        self._is_active = False
        self._is_cancelled = False
        self._on_expire: Optional[Callable[[], Any]] = None
        self._on_tick: Optional[Callable[[int], Any]] = None

    def arm(
        self,
        seconds: int,
        on_expire: Callable[[], Any],
        on_tick: Optional[Callable[[int], Any]] = None
    ) -> None:
        """
        Seed the countdown and schedule the first tick.

        Any pending tick from a previous countdown is cancelled first.

        Args:
            seconds: Countdown length in seconds
            on_expire: Called once when the countdown reaches zero
            on_tick: Called after every tick with the remaining seconds

        Raises:
            ValueError: If seconds is not positive
        """
        if seconds <= 0:
            raise ValueError(f"Timer duration must be positive, got {seconds}")

        self._cancel_pending()

        self._remaining_time = seconds
        self._total_duration = seconds
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._is_active = True
        self._is_cancelled = False

        try:
            self._schedule_tick()
        except Exception as e:
            self._is_active = False
            TimerLifecycleLogger.log_timer_error(self._label, "schedule_error", str(e), "arm")
            raise

        TimerLifecycleLogger.log_timer_armed(self._label, seconds)

    def reseed(self, seconds: int) -> None:
        """Set the remaining time without starting a countdown."""
        self._cancel_pending()
        self._is_active = False
        self._remaining_time = max(0, seconds)
        self._total_duration = self._remaining_time

    def cancel(self) -> None:
        """Cancel the countdown; no expiry fires afterwards."""
        was_active = self._is_active
        self._cancel_pending()
        self._is_active = False
        self._is_cancelled = True

        if was_active:
            TimerLifecycleLogger.log_timer_completion(self._label, "cancelled", self._total_duration)
        else:
            TimerLifecycleLogger.log_timer_state_transition(
                self._label,
                "inactive",
                "cancelled",
                "no active countdown"
            )

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule_tick(self) -> None:
        self._handle = self._scheduler.call_later(self._tick_interval, self._tick)

    def _tick(self) -> None:
        """Advance the countdown by one interval."""
        self._handle = None
        if not self._is_active:
            return

        self._remaining_time -= 1
        TimerLifecycleLogger.log_timer_update(self._label, self._remaining_time, self._total_duration)

        if self._on_tick is not None:
            try:
                self._on_tick(self._remaining_time)
            except Exception as e:
                TimerLifecycleLogger.log_timer_error(self._label, "tick_callback_error", str(e), "_tick")

        # The tick callback may have cancelled or re-armed the timer
        if not self._is_active or self._handle is not None:
            return

        if self._remaining_time > 0:
            self._schedule_tick()
            return

        self._is_active = False
        TimerLifecycleLogger.log_timer_completion(self._label, "natural_expiry", self._total_duration)
        on_expire = self._on_expire
        if on_expire is not None:
            on_expire()

    @property
    def label(self) -> str:
        """Name used in lifecycle logs."""
        return self._label

    @property
    def is_active(self) -> bool:
        """Check if a countdown is running."""
        return self._is_active

    @property
    def is_cancelled(self) -> bool:
        """Check if the last countdown was cancelled."""
        return self._is_cancelled

    @property
    def remaining_time(self) -> int:
        """Get remaining time in seconds."""
        return self._remaining_time

    @property
    def total_duration(self) -> int:
        """Length of the current countdown in seconds."""
        return self._total_duration

    def get_status(self) -> dict:
        """Get the timer state as a dictionary."""
        return {
            'remaining_time': self._remaining_time,
            'total_duration': self._total_duration,
            'is_active': self._is_active,
            'is_cancelled': self._is_cancelled
        }
