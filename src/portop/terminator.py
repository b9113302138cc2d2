"""Process termination with outcome classification."""

from collections.abc import Callable

import psutil

from portop.config import DEFAULT_KILL_SIGNAL
from portop.logging import get_logger
from portop.models import KillOutcome, KillResult

logger = get_logger(__name__)

SendSignal = Callable[[int, int], None]


def psutil_send_signal(pid: int, sig: int) -> None:
    """Deliver a signal through psutil."""
    psutil.Process(pid).send_signal(sig)


def psutil_wait_for_exit(pid: int, timeout: float) -> bool:
    """Return True if the process is gone within timeout seconds."""
    try:
        psutil.Process(pid).wait(timeout=timeout)
    except psutil.NoSuchProcess:
        return True
    except psutil.TimeoutExpired:
        return False
    except psutil.AccessDenied:
        return not psutil.pid_exists(pid)
    return True


class ProcessTerminator:
    """
    Sends a termination signal to a pid and classifies what happened.

    A successful send does not mean the process has exited: signal delivery
    is asynchronous and callers observe the exit on a later refresh. A pid
    that no longer exists counts as success, since the process is absent
    either way. Nothing is ever retried.
    """

    def __init__(
        self,
        sig: int = DEFAULT_KILL_SIGNAL,
        send_signal: SendSignal = psutil_send_signal,
        verify_timeout: float = 0.0,
        wait_for_exit: Callable[[int, float], bool] = psutil_wait_for_exit,
    ) -> None:
        """
        Initialize the ProcessTerminator.

        Args:
            sig: Signal number to send. Default SIGKILL (SIGTERM on Windows).
            send_signal: OS primitive delivering the signal to a pid.
            verify_timeout: Seconds to wait for the process to exit after a
                successful send. 0 skips verification.
            wait_for_exit: Primitive used for verification.
        """
        self._sig = sig
        self._send_signal = send_signal
        self._verify_timeout = verify_timeout
        self._wait_for_exit = wait_for_exit

    def terminate(self, pid: int) -> KillResult:
        """
        Kill a process.

        Raises:
            ValueError: If pid is not a positive integer.
        """
        if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
            raise ValueError(f"pid must be a positive integer, got {pid!r}")

        try:
            self._send_signal(pid, self._sig)
        except (psutil.NoSuchProcess, ProcessLookupError):
            logger.info("kill_target_absent", pid=pid)
            return KillResult(pid, KillOutcome.NOT_FOUND, f"Process {pid} not found")
        except (psutil.AccessDenied, PermissionError):
            logger.warning("kill_permission_denied", pid=pid)
            return KillResult(
                pid, KillOutcome.PERMISSION_DENIED, f"Permission denied to kill process {pid}"
            )
        except (psutil.Error, OSError, OverflowError) as exc:
            logger.error("kill_failed", pid=pid, error=str(exc))
            return KillResult(
                pid, KillOutcome.UNKNOWN_FAILURE, f"Failed to kill process {pid}: {exc}"
            )

        logger.info("kill_signal_sent", pid=pid, signal=self._sig)

        if self._verify_timeout > 0 and not self._wait_for_exit(pid, self._verify_timeout):
            return KillResult(
                pid,
                KillOutcome.STILL_RUNNING,
                f"Process {pid} still running after {self._verify_timeout:g}s",
            )
        return KillResult(pid, KillOutcome.TERMINATED, f"Process {pid} killed successfully")
