"""Watcher registry — who is tracked, and who still owes an acknowledgement.

A watcher is either absent (untracked), current (acknowledged the clock's
generation) or outdated (was current before the last advance). The outdated
set gates readiness: the acknowledgement or departure that empties it is
reported as Outcome.BECAME_READY, exactly once per emptying.
"""

from __future__ import annotations

import enum
import logging

from sysgenid.clock import GenerationClock
from sysgenid.errors import InvariantViolation, StaleAcknowledgement

logger = logging.getLogger("sysgenid.registry")


class Outcome(enum.Enum):
    NONE = "none"
    BECAME_READY = "became_ready"


class WatcherStatus(enum.Enum):
    UNTRACKED = "untracked"
    CURRENT = "current"
    OUTDATED = "outdated"


class WatcherRegistry:
    """Per-watcher acknowledgement state, checked against a GenerationClock."""

    def __init__(self, clock: GenerationClock) -> None:
        self._clock = clock
        self._current: dict[str, int] = {}  # watcher id -> acked generation
        self._outdated: set[str] = set()

    def mark_all_outdated(self) -> None:
        """Move every current watcher into the outdated set."""
        if not self._current:
            return
        self._outdated.update(self._current)
        self._current.clear()
        logger.debug("Marked %d watchers outdated", len(self._outdated))

    def acknowledge(self, watcher_id: str, generation: int) -> Outcome:
        """Record that watcher_id has caught up to the current generation.

        Raises StaleAcknowledgement, leaving state untouched, when generation
        is not the clock's current value.
        """
        current = self._clock.current()
        if generation != current:
            raise StaleAcknowledgement(generation, current)

        acked = self._current.get(watcher_id)
        if acked is not None:
            if acked != current:
                raise InvariantViolation(
                    f"watcher {watcher_id} is current at generation {acked}, "
                    f"clock is at {current}"
                )
            return Outcome.NONE

        self._current[watcher_id] = current
        logger.debug("Watcher %s acknowledged generation %d", watcher_id, current)
        return self._discard_outdated(watcher_id)

    def stop_tracking(self, watcher_id: str) -> Outcome:
        """Forget watcher_id entirely. Safe if it was never tracked."""
        if self._current.pop(watcher_id, None) is not None:
            logger.debug("Watcher %s no longer tracked", watcher_id)
        return self._discard_outdated(watcher_id)

    def _discard_outdated(self, watcher_id: str) -> Outcome:
        if watcher_id not in self._outdated:
            return Outcome.NONE
        self._outdated.discard(watcher_id)
        if self._outdated:
            return Outcome.NONE
        # Just removed the last outdated watcher.
        return Outcome.BECAME_READY

    # --- Introspection ---

    def outdated_count(self) -> int:
        return len(self._outdated)

    def tracked_count(self) -> int:
        return len(self._current) + len(self._outdated)

    def status(self, watcher_id: str) -> WatcherStatus:
        if watcher_id in self._current:
            return WatcherStatus.CURRENT
        if watcher_id in self._outdated:
            return WatcherStatus.OUTDATED
        return WatcherStatus.UNTRACKED

    def check_invariants(self) -> None:
        """Raise InvariantViolation if the two sets overlap or a record is stale."""
        both = self._outdated.intersection(self._current)
        if both:
            raise InvariantViolation(f"watchers both current and outdated: {sorted(both)}")
        current = self._clock.current()
        stale = sorted(w for w, acked in self._current.items() if acked != current)
        if stale:
            raise InvariantViolation(f"current watchers behind generation {current}: {stale}")

    def __repr__(self) -> str:
        return (
            f"WatcherRegistry(current={len(self._current)}, "
            f"outdated={len(self._outdated)})"
        )
