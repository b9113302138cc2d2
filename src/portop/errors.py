"""Exception hierarchy for portop."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from portop.models import KillOutcome


class PortopError(Exception):
    """Base class for all portop errors."""


class ConfigurationError(PortopError):
    """Invalid configuration value."""


class InspectorError(PortopError):
    """
    The system inspector could not list ports.

    Recoverable: the refresh pass is abandoned, the previous snapshot stays
    visible and the next tick tries again.
    """


class TerminationError(PortopError):
    """A kill request did not leave the process absent."""

    def __init__(self, pid: int, outcome: KillOutcome, message: str = "") -> None:
        self.pid = pid
        self.outcome = outcome
        self.message = message
        super().__init__(message or f"Failed to kill process {pid}: {outcome.value}")
