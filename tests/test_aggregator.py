"""Tests for the aggregator."""

import random

from portop.aggregator import aggregate, aggregate_raw, order_ports
from portop.models import AggregatedGroup, PidEntry
from portop.normalizer import normalize


def test_order_ports_numeric_then_opaque():
    """Test numeric ports sort ascending and opaque tokens keep first-seen order."""
    assert order_ports([443, "b", 80, "a", 443, "b", 22]) == (22, 80, 443, "b", "a")


def test_empty_input_yields_empty_hierarchy():
    """Test zero records is an empty result, not an error."""
    assert aggregate([]) == ()
    assert aggregate_raw([]) == ()


def test_nginx_node_scenario(scenario_records):
    """Test the nginx/node example groups as expected."""
    groups = aggregate_raw(scenario_records)

    assert groups == (
        AggregatedGroup(
            process_name="nginx",
            command="",
            pids=(PidEntry(pid=100, ports=(80, 443), user="root", cpu_percent="0.1", mem_percent="0.5"),),
        ),
        AggregatedGroup(
            process_name="node",
            command="",
            pids=(PidEntry(pid=200, ports=(3000,), user="alice", cpu_percent="2.0", mem_percent="1.2"),),
        ),
    )
    assert groups[0].pids[0].ports_label == "80, 443"
    assert groups[1].pids[0].ports_label == "3000"


def test_non_numeric_port_sorts_last(raw):
    """Test '*:excluded' comes after every numeric port."""
    groups = aggregate_raw(
        [raw(port="*:excluded"), raw(port="8080"), raw(port="22"), raw(port="weird")]
    )
    assert groups[0].pids[0].ports == (22, 8080, "*:excluded", "weird")


def test_duplicate_ports_collapse(raw):
    """Test the same port reported in several spellings appears once."""
    groups = aggregate_raw(
        [raw(port="80"), raw(port="*:80"), raw(port="80/tcp"), raw(port="[::]:80"), raw(port="443")]
    )
    assert groups[0].pids[0].ports == (80, 443)


def test_same_name_different_command_are_distinct_groups(raw):
    """Test groups are keyed by name and command."""
    groups = aggregate_raw(
        [
            raw(pid=1, name="python", command="python a.py", port="8000"),
            raw(pid=2, name="python", command="python b.py", port="8001"),
        ]
    )
    assert [g.key for g in groups] == [("python", "python a.py"), ("python", "python b.py")]


def test_same_name_and_command_merge(raw):
    """Test pids with identical identity share one group, ordered by pid."""
    groups = aggregate_raw(
        [
            raw(pid=30, name="gunicorn", command="gunicorn app", port="8000"),
            raw(pid=10, name="gunicorn", command="gunicorn app", port="8000"),
            raw(pid=20, name="gunicorn", command="gunicorn app", port="8000"),
        ]
    )
    assert len(groups) == 1
    assert [entry.pid for entry in groups[0].pids] == [10, 20, 30]


def test_groups_sorted_case_insensitively(raw):
    """Test group order ignores case of the process name."""
    groups = aggregate_raw(
        [raw(pid=1, name="redis"), raw(pid=2, name="Docker"), raw(pid=3, name="caddy")]
    )
    assert [g.process_name for g in groups] == ["caddy", "Docker", "redis"]


def test_last_observed_stats_win(raw):
    """Test user/cpu/mem come from the last record of a pid."""
    groups = aggregate_raw(
        [
            raw(pid=5, port="80", cpu="1.0", mem="1.0", user="a"),
            raw(pid=5, port="81", cpu="2.0", mem="3.0", user="b"),
        ]
    )
    entry = groups[0].pids[0]
    assert (entry.user, entry.cpu_percent, entry.mem_percent) == ("b", "2.0", "3.0")


def test_pid_with_changed_identity_lands_in_one_group(raw):
    """Test a pid reported under two names is placed once, by its last record."""
    groups = aggregate_raw(
        [
            raw(pid=7, name="bash", port="9000"),
            raw(pid=7, name="python", port="9001"),
        ]
    )
    assert len(groups) == 1
    assert groups[0].process_name == "python"
    assert groups[0].pids[0].ports == (9000, 9001)


def test_pid_without_ports_is_kept(raw):
    """Test a process reported without a port still appears."""
    groups = aggregate_raw([raw(pid=9, port="")])
    assert groups[0].pids[0].pid == 9
    assert groups[0].pids[0].ports == ()
    assert groups[0].pids[0].ports_label == ""


class TestProperties:
    """Coverage, de-duplication and determinism over generated input."""

    NAMES = ["nginx", "node", "", "python", "Python", "sshd"]
    PORTS = ["80", "443", "*:80", "3000", "*:excluded", "", "abc", "22/tcp", "70000"]

    def _random_records(self, raw, rng: random.Random, count: int):
        return [
            raw(
                pid=rng.randint(1, 30),
                name=rng.choice(self.NAMES),
                command=rng.choice(["", "cmd a", "cmd b"]),
                port=rng.choice(self.PORTS),
                cpu=rng.choice(["0.0", "1.5", "x"]),
            )
            for _ in range(count)
        ]

    def test_every_pid_in_exactly_one_group(self, raw):
        """Test no pid is lost or duplicated."""
        rng = random.Random(1234)
        for _ in range(50):
            records = self._random_records(raw, rng, rng.randint(0, 60))
            groups = aggregate(normalize(r) for r in records)

            seen = [entry.pid for group in groups for entry in group.pids]
            assert len(seen) == len(set(seen))
            assert set(seen) == {normalize(r).pid for r in records}

    def test_ports_have_no_duplicates(self, raw):
        """Test every PidEntry's ports are unique."""
        rng = random.Random(99)
        for _ in range(50):
            groups = aggregate_raw(self._random_records(raw, rng, 40))
            for group in groups:
                for entry in group.pids:
                    assert len(entry.ports) == len(set(entry.ports))

    def test_aggregation_is_deterministic(self, raw):
        """Test the same input always produces the same ordered output."""
        rng = random.Random(7)
        for _ in range(20):
            records = self._random_records(raw, rng, 40)
            assert aggregate_raw(records) == aggregate_raw(list(records))
