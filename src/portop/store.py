"""Holds the latest published port hierarchy."""

import threading
import time
from dataclasses import dataclass

from portop.logging import get_logger
from portop.models import NOT_LOADED, Hierarchy, LoadState

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class _Published:
    hierarchy: Hierarchy | LoadState
    version: int
    published_at: float | None


class SnapshotStore:
    """
    Single-writer, many-reader holder of the current hierarchy.

    Readers never lock: the hierarchy, its version and its timestamp live in
    one immutable object whose reference is replaced in a single assignment.
    The writer lock only serializes publishers across that swap.
    """

    def __init__(self) -> None:
        self._current = _Published(NOT_LOADED, 0, None)
        self._write_lock = threading.Lock()

    def publish(self, hierarchy: Hierarchy) -> int:
        """Replace the visible hierarchy and return its version number."""
        hierarchy = tuple(hierarchy)
        with self._write_lock:
            published = _Published(
                hierarchy=hierarchy,
                version=self._current.version + 1,
                published_at=time.monotonic(),
            )
            self._current = published
        logger.debug("snapshot_published", version=published.version, groups=len(hierarchy))
        return published.version

    def current_view(self) -> Hierarchy | LoadState:
        """Latest hierarchy, or NOT_LOADED before the first publish."""
        return self._current.hierarchy

    @property
    def version(self) -> int:
        """Number of publishes so far; 0 means not yet loaded."""
        return self._current.version

    @property
    def published_at(self) -> float | None:
        """time.monotonic() of the last publish."""
        return self._current.published_at

    @property
    def is_loaded(self) -> bool:
        return self._current.hierarchy is not NOT_LOADED
