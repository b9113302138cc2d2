"""Data models for portop."""

from dataclasses import dataclass
from enum import Enum

from portop.errors import TerminationError

Port = int | str


class LoadState(Enum):
    """Marker for a snapshot store that has not published yet."""

    NOT_LOADED = "not-yet-loaded"


NOT_LOADED = LoadState.NOT_LOADED


@dataclass(slots=True, frozen=True)
class RawPortRecord:
    """One unprocessed (pid, port) observation from an inspector."""

    pid: int
    process_name: str
    command: str
    port: str  # '8080', '*:8080', '127.0.0.1:53 (LISTEN)', '80/tcp', ...
    user: str
    cpu_percent: str | float
    mem_percent: str | float


@dataclass(slots=True, frozen=True)
class ProcessPortRecord:
    """Normalized observation with well-formed fields."""

    pid: int
    process_name: str
    command: str
    port: Port | None  # None: the process was reported without a port
    user: str
    cpu_percent: str
    mem_percent: str


@dataclass(slots=True, frozen=True)
class PidEntry:
    """One process id inside a group, with every port it holds."""

    pid: int
    ports: tuple[Port, ...]
    user: str
    cpu_percent: str
    mem_percent: str

    @property
    def ports_label(self) -> str:
        """Ports rendered as a comma-separated list, e.g. '80, 443'."""
        return ", ".join(str(port) for port in self.ports)


@dataclass(slots=True, frozen=True)
class AggregatedGroup:
    """All pids sharing one (process name, command) identity."""

    process_name: str
    command: str
    pids: tuple[PidEntry, ...]

    @property
    def key(self) -> tuple[str, str]:
        return (self.process_name, self.command)


Hierarchy = tuple[AggregatedGroup, ...]


class KillOutcome(Enum):
    """Classified result of a termination request."""

    TERMINATED = "terminated"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    STILL_RUNNING = "still_running"
    UNKNOWN_FAILURE = "unknown_failure"


@dataclass(slots=True, frozen=True)
class KillResult:
    """Outcome of ProcessTerminator.terminate()."""

    pid: int
    outcome: KillOutcome
    message: str = ""

    @property
    def ok(self) -> bool:
        """True when the process is gone or was never there."""
        return self.outcome in (KillOutcome.TERMINATED, KillOutcome.NOT_FOUND)

    def raise_for_outcome(self) -> None:
        """Raise TerminationError unless the outcome is success-equivalent."""
        if not self.ok:
            raise TerminationError(self.pid, self.outcome, self.message)


@dataclass(slots=True, frozen=True)
class ErrorNotice:
    """A transient error shown to the operator until it expires."""

    message: str
    raised_at: float  # time.monotonic()
    error: Exception | None = None
