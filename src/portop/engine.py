"""Port/process aggregation and lifecycle engine."""

import threading
import time
from collections.abc import Callable

from portop.aggregator import aggregate_raw
from portop.config import PortopConfig
from portop.inspector import SystemInspector, create_inspector
from portop.logging import get_logger
from portop.models import ErrorNotice, Hierarchy, KillResult, LoadState
from portop.scheduler import RefreshScheduler
from portop.store import SnapshotStore
from portop.terminator import ProcessTerminator

logger = get_logger(__name__)


class PortEngine:
    """
    Keeps an aggregated view of open ports fresh and kills processes on request.

    Refresh passes run off the caller's thread; get_snapshot() always returns
    the last complete hierarchy immediately. A failed pass keeps the previous
    hierarchy and sets refresh_error until the next successful pass or until
    error_display_timeout elapses.

    Kills are confirmed eventually, not synchronously: kill_process() sends
    the signal, and when refresh_after is set a refresh follows after
    kill_refresh_delay seconds to give the OS time to reap the process.
    """

    def __init__(
        self,
        config: PortopConfig | None = None,
        inspector: SystemInspector | None = None,
        terminator: ProcessTerminator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or PortopConfig()
        self._inspector = inspector or create_inspector(
            self._config.inspector, include_udp=self._config.include_udp
        )
        self._terminator = terminator or ProcessTerminator(
            sig=self._config.kill_signal,
            verify_timeout=self._config.kill_verify_timeout,
        )
        self._clock = clock
        self._store = SnapshotStore()
        self._scheduler = RefreshScheduler(
            self._refresh_pass,
            interval=self._config.refresh_interval,
            on_success=self._clear_refresh_error,
            on_error=self._record_refresh_error,
        )
        self._refresh_error: ErrorNotice | None = None
        self._kill_error: ErrorNotice | None = None
        self._delayed_refreshes: set[threading.Timer] = set()
        self._timers_lock = threading.Lock()

    def __enter__(self) -> "PortEngine":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def config(self) -> PortopConfig:
        return self._config

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    def start(self) -> None:
        """Load the first snapshot and enable periodic refresh."""
        self.refresh_now()
        self.set_periodic_refresh(True)

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the timer and drop scheduled post-kill refreshes."""
        self._scheduler.stop(timeout=timeout)
        with self._timers_lock:
            timers = list(self._delayed_refreshes)
            self._delayed_refreshes.clear()
        for timer in timers:
            timer.cancel()

    def get_snapshot(self) -> Hierarchy | LoadState:
        """Latest published hierarchy, or NOT_LOADED."""
        return self._store.current_view()

    def refresh_now(self) -> None:
        """Trigger a refresh pass; the result shows up in get_snapshot()."""
        self._scheduler.refresh_now()

    def set_periodic_refresh(self, enabled: bool) -> None:
        if enabled:
            self._scheduler.start()
        else:
            self._scheduler.stop()

    @property
    def periodic_enabled(self) -> bool:
        return self._scheduler.periodic_enabled

    def kill_process(self, pid: int, refresh_after: bool = True) -> KillResult:
        """
        Terminate a process and classify the outcome.

        Failures are returned, never raised, and never retried. They are also
        recorded in kill_error, separate from refresh errors.

        Raises:
            ValueError: If pid is not a positive integer.
        """
        result = self._terminator.terminate(pid)
        if result.ok:
            self._kill_error = None
        else:
            self._kill_error = ErrorNotice(result.message, self._clock())
        if refresh_after:
            self._schedule_refresh(self._config.kill_refresh_delay)
        return result

    @property
    def refresh_error(self) -> ErrorNotice | None:
        """Error of the last refresh pass, until it succeeds again or expires."""
        return self._unexpired(self._refresh_error)

    @property
    def kill_error(self) -> ErrorNotice | None:
        """Message of the last failed kill, until it expires."""
        return self._unexpired(self._kill_error)

    def _unexpired(self, notice: ErrorNotice | None) -> ErrorNotice | None:
        if notice is None:
            return None
        if self._clock() - notice.raised_at >= self._config.error_display_timeout:
            return None
        return notice

    def _refresh_pass(self) -> None:
        """Inspect, aggregate and publish. Runs on a scheduler thread."""
        started = self._clock()
        raw_records = self._inspector.list_raw_records()
        hierarchy = aggregate_raw(raw_records)
        version = self._store.publish(hierarchy)
        logger.debug(
            "refresh_completed",
            version=version,
            records=len(raw_records),
            groups=len(hierarchy),
            duration_ms=round((self._clock() - started) * 1000, 1),
        )

    def _clear_refresh_error(self) -> None:
        self._refresh_error = None

    def _record_refresh_error(self, exc: Exception) -> None:
        self._refresh_error = ErrorNotice(str(exc) or type(exc).__name__, self._clock(), exc)

    def _schedule_refresh(self, delay: float) -> None:
        if delay <= 0:
            self.refresh_now()
            return

        def fire() -> None:
            with self._timers_lock:
                self._delayed_refreshes.discard(timer)
            self.refresh_now()

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._timers_lock:
            self._delayed_refreshes.add(timer)
        timer.start()
