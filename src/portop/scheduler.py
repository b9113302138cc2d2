"""Periodic and on-demand refresh driver for portop."""

import threading
from collections.abc import Callable
from enum import Enum

from portop.logging import get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL = 5.0


class SchedulerState(Enum):
    """Activity and timer states of the RefreshScheduler."""

    IDLE = "idle"
    REFRESHING = "refreshing"
    PERIODIC_ENABLED = "periodic_enabled"
    PERIODIC_DISABLED = "periodic_disabled"


class RefreshScheduler:
    """
    Runs a refresh callable on a fixed interval and on demand.

    At most one pass runs at a time. A trigger that arrives while a pass is
    in flight marks a single pending pass, which runs as soon as the current
    one finishes; further triggers collapse into that same pending pass.

    Passes run on short-lived daemon threads so neither the timer thread nor
    the caller ever blocks on the OS query.
    """

    def __init__(
        self,
        refresh: Callable[[], None],
        interval: float = DEFAULT_INTERVAL,
        on_success: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        """
        Initialize the RefreshScheduler.

        Args:
            refresh: One complete pass (inspect, aggregate, publish). Raising
                aborts the pass and is reported to on_error.
            interval: Seconds between periodic passes. Default 5.0s.
            on_success: Called after each pass that returned normally.
            on_error: Called with the exception of each failed pass.
        """
        self._refresh = refresh
        self._interval = interval
        self._on_success = on_success
        self._on_error = on_error

        self._state_lock = threading.Lock()
        self._in_flight = False
        self._pending = False
        self._idle = threading.Event()
        self._idle.set()
        self._passes_started = 0

        self._stop_event = threading.Event()
        self._timer: threading.Thread | None = None

    @property
    def interval(self) -> float:
        """Get the periodic interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the periodic interval."""
        self._interval = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def refresh_state(self) -> SchedulerState:
        """IDLE or REFRESHING."""
        with self._state_lock:
            return SchedulerState.REFRESHING if self._in_flight else SchedulerState.IDLE

    @property
    def periodic_state(self) -> SchedulerState:
        """PERIODIC_ENABLED or PERIODIC_DISABLED."""
        if self.periodic_enabled:
            return SchedulerState.PERIODIC_ENABLED
        return SchedulerState.PERIODIC_DISABLED

    @property
    def periodic_enabled(self) -> bool:
        """Check if the timer thread is running."""
        return self._timer is not None and self._timer.is_alive()

    @property
    def passes_started(self) -> int:
        """Total number of passes started since creation."""
        with self._state_lock:
            return self._passes_started

    def start(self) -> None:
        """Start firing a refresh every interval."""
        if self.periodic_enabled:
            return

        self._stop_event = threading.Event()
        self._timer = threading.Thread(
            target=self._timer_loop,
            args=(self._stop_event,),
            daemon=True,
            name="RefreshTimer",
        )
        self._timer.start()
        logger.info("periodic_refresh_started", interval=self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the periodic timer.

        A pass already in flight is left to finish; it just is not followed
        by further timer-driven passes.

        Args:
            timeout: How long to wait for the timer thread to stop (seconds).
        """
        self._stop_event.set()
        if self._timer is not None:
            self._timer.join(timeout=timeout)
            self._timer = None
            logger.info("periodic_refresh_stopped")

    def refresh_now(self) -> None:
        """Request a pass without touching the periodic timer."""
        if self._claim():
            threading.Thread(target=self._drain, daemon=True, name="RefreshPass").start()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no pass is in flight or pending. Returns False on timeout."""
        return self._idle.wait(timeout=timeout)

    def _timer_loop(self, stop_event: threading.Event) -> None:
        """Periodic loop running in the timer thread."""
        while not stop_event.wait(timeout=self._interval):
            self.refresh_now()

    def _claim(self) -> bool:
        """Return True if the caller must start draining, False if coalesced."""
        with self._state_lock:
            if self._in_flight:
                self._pending = True
                return False
            self._in_flight = True
            self._idle.clear()
            return True

    def _drain(self) -> None:
        """Run passes until no trigger is pending."""
        released = False
        try:
            while True:
                self._run_pass()
                with self._state_lock:
                    if not self._pending:
                        self._in_flight = False
                        self._idle.set()
                        released = True
                        return
                    self._pending = False
        finally:
            # A raising callback must not leave the scheduler wedged.
            if not released:
                with self._state_lock:
                    self._in_flight = False
                    self._pending = False
                    self._idle.set()

    def _run_pass(self) -> None:
        with self._state_lock:
            self._passes_started += 1
        try:
            self._refresh()
        except Exception as exc:
            logger.warning("refresh_failed", error=str(exc), error_type=type(exc).__name__)
            if self._on_error is not None:
                self._on_error(exc)
            return
        if self._on_success is not None:
            self._on_success()
