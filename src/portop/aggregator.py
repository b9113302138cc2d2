"""Groups normalized records into the process -> pid -> ports hierarchy."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from portop.models import (
    AggregatedGroup,
    Hierarchy,
    PidEntry,
    Port,
    ProcessPortRecord,
    RawPortRecord,
)
from portop.normalizer import normalize


@dataclass(slots=True)
class _PidAccumulator:
    """Mutable per-pid state while one pass is being aggregated."""

    process_name: str
    command: str
    user: str
    cpu_percent: str
    mem_percent: str
    ports: list[Port] = field(default_factory=list)
    seen: set[Port] = field(default_factory=set)

    def observe(self, record: ProcessPortRecord) -> None:
        # Point-in-time samples: the last record for the pid wins.
        self.process_name = record.process_name
        self.command = record.command
        self.user = record.user
        self.cpu_percent = record.cpu_percent
        self.mem_percent = record.mem_percent
        if record.port is not None and record.port not in self.seen:
            self.seen.add(record.port)
            self.ports.append(record.port)


def order_ports(ports: Iterable[Port]) -> tuple[Port, ...]:
    """
    De-duplicate and order ports.

    Numeric ports come first in ascending order, followed by opaque tokens
    in the order they were first seen.
    """
    numeric: set[int] = set()
    opaque: list[str] = []
    for port in ports:
        if isinstance(port, int):
            numeric.add(port)
        elif port not in opaque:
            opaque.append(port)
    return (*sorted(numeric), *opaque)


def _group_sort_key(group: AggregatedGroup) -> tuple[str, str, str]:
    return (group.process_name.lower(), group.process_name, group.command)


def aggregate(records: Iterable[ProcessPortRecord]) -> Hierarchy:
    """
    Build the ordered group hierarchy for one pass.

    Each pid lands in exactly one group, chosen by the (process name,
    command) of its last record. Pids without any port are kept with an
    empty port list.
    """
    by_pid: dict[int, _PidAccumulator] = {}
    for record in records:
        acc = by_pid.get(record.pid)
        if acc is None:
            acc = by_pid[record.pid] = _PidAccumulator(
                process_name=record.process_name,
                command=record.command,
                user=record.user,
                cpu_percent=record.cpu_percent,
                mem_percent=record.mem_percent,
            )
        acc.observe(record)

    groups: dict[tuple[str, str], list[PidEntry]] = {}
    for pid, acc in by_pid.items():
        entry = PidEntry(
            pid=pid,
            ports=order_ports(acc.ports),
            user=acc.user,
            cpu_percent=acc.cpu_percent,
            mem_percent=acc.mem_percent,
        )
        groups.setdefault((acc.process_name, acc.command), []).append(entry)

    hierarchy = [
        AggregatedGroup(
            process_name=name,
            command=command,
            pids=tuple(sorted(entries, key=lambda e: e.pid)),
        )
        for (name, command), entries in groups.items()
    ]
    hierarchy.sort(key=_group_sort_key)
    return tuple(hierarchy)


def aggregate_raw(raw_records: Iterable[RawPortRecord]) -> Hierarchy:
    """Normalize and aggregate raw inspector output in one step."""
    return aggregate(normalize(raw) for raw in raw_records)
