"""System inspectors: list open ports and the processes that own them."""

import socket
import subprocess
from typing import Protocol

import psutil

from portop.errors import InspectorError
from portop.logging import get_logger
from portop.models import RawPortRecord

logger = get_logger(__name__)


class SystemInspector(Protocol):
    """Anything that can list the current raw port/process records."""

    def list_raw_records(self) -> list[RawPortRecord]:
        """
        Raises:
            InspectorError: If the OS query failed or was denied.
        """
        ...


class PsutilInspector:
    """
    Lists listening TCP and bound UDP sockets using psutil.

    Process details come from psutil.process_iter(), whose cached Process
    objects give meaningful cpu_percent values from the second pass on.
    Processes that die or deny access mid-query degrade to empty fields.
    """

    _ATTRS = ["pid", "name", "username", "cpu_percent", "memory_percent", "cmdline"]

    def __init__(self, include_udp: bool = True) -> None:
        self._include_udp = include_udp

    def list_raw_records(self) -> list[RawPortRecord]:
        try:
            connections = psutil.net_connections(kind="inet")
        except psutil.AccessDenied as exc:
            raise InspectorError("Permission denied listing network sockets") from exc
        except OSError as exc:
            raise InspectorError(f"Failed to list network sockets: {exc}") from exc

        ports_by_pid: dict[int, list[str]] = {}
        for conn in connections:
            if conn.pid is None or not conn.laddr:
                continue
            if conn.type == socket.SOCK_STREAM:
                if conn.status != psutil.CONN_LISTEN:
                    continue
            elif conn.type == socket.SOCK_DGRAM:
                if not self._include_udp or conn.raddr:
                    continue
            else:
                continue
            ports_by_pid.setdefault(conn.pid, []).append(str(conn.laddr.port))

        if not ports_by_pid:
            return []

        details = self._collect_details(set(ports_by_pid))
        records: list[RawPortRecord] = []
        for pid, ports in ports_by_pid.items():
            info = details.get(pid)
            if info is None:
                # Exited between the socket scan and the process scan.
                logger.debug("process_vanished", pid=pid)
                continue
            for port in ports:
                records.append(
                    RawPortRecord(
                        pid=pid,
                        process_name=info.get("name") or "",
                        command=" ".join(info.get("cmdline") or []),
                        port=port,
                        user=info.get("username") or "",
                        cpu_percent=_stat(info.get("cpu_percent")),
                        mem_percent=_stat(info.get("memory_percent")),
                    )
                )
        return records

    def _collect_details(self, pids: set[int]) -> dict[int, dict]:
        details: dict[int, dict] = {}
        for proc in psutil.process_iter(attrs=self._ATTRS, ad_value=None):
            if proc.pid not in pids:
                continue
            try:
                details[proc.pid] = dict(proc.info)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return details


def _stat(value: float | None) -> str:
    return "" if value is None else f"{value:.1f}"


class LsofInspector:
    """
    Lists listening sockets with lsof and fills in process details with ps.

    Works where psutil cannot see other users' sockets without root
    (notably macOS).
    """

    LSOF_ARGS = ["lsof", "-i", "-P", "-n", "-sTCP:LISTEN"]

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    def list_raw_records(self) -> list[RawPortRecord]:
        stdout = self._run(self.LSOF_ARGS, allow_empty_failure=True)

        # pid -> (command name, [address tokens])
        sockets: dict[int, tuple[str, list[str]]] = {}
        for line in stdout.splitlines()[1:]:  # skip header
            # COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME
            parts = line.split(None, 8)
            if len(parts) < 9:
                continue
            try:
                pid = int(parts[1])
            except ValueError:
                continue
            address = parts[8].removesuffix(" (LISTEN)").strip()
            if "->" in address:
                continue  # connected UDP socket, not a bound port
            name, addresses = sockets.setdefault(pid, (parts[0], []))
            if address not in addresses:
                addresses.append(address)

        records: list[RawPortRecord] = []
        for pid, (name, addresses) in sockets.items():
            user, cpu, mem, command = self._process_details(pid)
            for address in addresses:
                records.append(
                    RawPortRecord(
                        pid=pid,
                        process_name=name,
                        command=command,
                        port=address,
                        user=user,
                        cpu_percent=cpu,
                        mem_percent=mem,
                    )
                )
        return records

    def _process_details(self, pid: int) -> tuple[str, str, str, str]:
        """user, %cpu, %mem and full command line, or blanks if ps fails."""
        try:
            output = subprocess.run(
                ["ps", "-p", str(pid), "-o", "user=,%cpu=,%mem=,command="],
                capture_output=True,
                text=True,
                timeout=self._timeout,
            ).stdout
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("ps_failed", pid=pid, error=str(exc))
            return ("", "", "", "")

        parts = output.strip().split(None, 3)
        if len(parts) < 4:
            return ("", "", "", "")
        return (parts[0], parts[1], parts[2], parts[3])

    def _run(self, args: list[str], allow_empty_failure: bool = False) -> str:
        try:
            proc = subprocess.run(args, capture_output=True, text=True, timeout=self._timeout)
        except FileNotFoundError as exc:
            raise InspectorError(f"{args[0]} is not installed") from exc
        except subprocess.TimeoutExpired as exc:
            raise InspectorError(f"{args[0]} timed out after {self._timeout:g}s") from exc
        except OSError as exc:
            raise InspectorError(f"Failed to execute {args[0]}: {exc}") from exc

        if proc.returncode != 0:
            if proc.stdout.strip():
                # lsof exits 1 on warnings it cannot resolve but still lists sockets.
                logger.debug("command_partial_failure", command=args[0], status=proc.returncode)
                return proc.stdout
            # lsof exits 1 with no output when nothing matches.
            if allow_empty_failure and not proc.stderr.strip():
                return ""
            message = proc.stderr.strip() or f"{args[0]} exited with status {proc.returncode}"
            raise InspectorError(message)
        return proc.stdout


def create_inspector(kind: str = "psutil", include_udp: bool = True) -> SystemInspector:
    """Build the inspector named by PortopConfig.inspector."""
    if kind == "lsof":
        return LsofInspector()
    if kind == "psutil":
        return PsutilInspector(include_udp=include_udp)
    raise ValueError(f"Unknown inspector: {kind!r}")
