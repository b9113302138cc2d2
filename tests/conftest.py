"""Shared fixtures for portop tests."""

import threading

import pytest

from portop.errors import InspectorError
from portop.models import RawPortRecord


def make_raw(
    pid: int = 100,
    name: str = "nginx",
    port: str = "80",
    user: str = "root",
    cpu: str = "0.1",
    mem: str = "0.5",
    command: str = "",
) -> RawPortRecord:
    """Build a RawPortRecord with short keyword names."""
    return RawPortRecord(
        pid=pid,
        process_name=name,
        command=command,
        port=port,
        user=user,
        cpu_percent=cpu,
        mem_percent=mem,
    )


class FakeInspector:
    """
    Scriptable inspector.

    Returns `records` (or raises `error`) on every call. When `gate` is set,
    each call blocks until the gate is released, simulating a slow OS query.
    """

    def __init__(self, records: list[RawPortRecord] | None = None) -> None:
        self.records = list(records or [])
        self.error: Exception | None = None
        self.gate: threading.Event | None = None
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.entered = threading.Event()
        self._lock = threading.Lock()

    def list_raw_records(self) -> list[RawPortRecord]:
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            records = list(self.records)
            error = self.error
        self.entered.set()
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5.0)
            if error is not None:
                raise error
            return records
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def raw():
    """Factory for RawPortRecord."""
    return make_raw


@pytest.fixture
def scenario_records():
    """The nginx/node example: pid 100 on 80 and 443, pid 200 on 3000."""
    return [
        make_raw(pid=100, name="nginx", port="80", user="root", cpu="0.1", mem="0.5"),
        make_raw(pid=100, name="nginx", port="443", user="root", cpu="0.1", mem="0.5"),
        make_raw(pid=200, name="node", port="3000", user="alice", cpu="2.0", mem="1.2"),
    ]


@pytest.fixture
def inspector(scenario_records):
    """FakeInspector preloaded with the nginx/node scenario."""
    return FakeInspector(scenario_records)


@pytest.fixture
def denied_error():
    return InspectorError("Permission denied listing network sockets")


class RecordingSignal:
    """Fake kill primitive that records target pids and raises a preset error."""

    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error
        self.calls: list[tuple[int, int]] = []

    @property
    def pids(self) -> list[int]:
        return [pid for pid, _ in self.calls]

    def __call__(self, pid: int, sig: int) -> None:
        self.calls.append((pid, sig))
        if self.error is not None:
            raise self.error
