"""Coordinator — the single serialization point for generation bookkeeping.

Every public operation runs under one re-entrant lock, so trigger-update,
acknowledge and disconnect handling never interleave. Notifications are
published on `notifications` before the lock is released: a subscriber that
reads back immediately sees state consistent with what it was told.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Callable, TypeVar, ParamSpec

from sysgenid.clock import GenerationClock
from sysgenid.errors import GenerationOverflow, IdentityUnavailable
from sysgenid.notifications import NewGeneration, Notification, Reply, SystemReady
from sysgenid.registry import Outcome, WatcherRegistry
from sysgenid.stream import EventStream

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger("sysgenid.coordinator")

# Generations travel over the bus as u32.
GENERATION_MAX = 0xFFFFFFFF


def serialized(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: run a Coordinator method while holding its lock."""

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return fn(self, *args, **kwargs)

    return wrapper


class Coordinator:
    """Owns the GenerationClock and WatcherRegistry and serializes all events."""

    def __init__(self, clock: GenerationClock | None = None, *, limit: int = GENERATION_MAX) -> None:
        self._lock = threading.RLock()
        self._clock = clock if clock is not None else GenerationClock()
        self._registry = WatcherRegistry(self._clock)
        self._limit = limit
        self.notifications: EventStream[Notification] = EventStream()

    @property
    def registry(self) -> WatcherRegistry:
        return self._registry

    @serialized
    def get_generation(self) -> int:
        return self._clock.current()

    @serialized
    def get_outdated_count(self) -> int:
        return self._registry.outdated_count()

    @serialized
    def trigger_update(self, minimum_generation: int = 0) -> Reply:
        """Advance the generation and mark every tracked watcher outdated.

        Emits NewGeneration, plus SystemReady straight away when nobody was
        tracked (readiness is vacuous).
        """
        current = self._clock.current()
        if current >= self._limit or minimum_generation > self._limit:
            raise GenerationOverflow(
                f"cannot advance generation {current} (minimum {minimum_generation}) "
                f"past {self._limit}"
            )
        generation = self._clock.advance(minimum_generation)
        self._registry.mark_all_outdated()
        outdated = self._registry.outdated_count()
        logger.info("Generation advanced to %d, %d watchers outdated", generation, outdated)

        emitted = [self._emit(NewGeneration(generation))]
        if outdated == 0:
            emitted.append(self._ready(generation))
        return Reply(generation, tuple(emitted))

    @serialized
    def update_watcher(self, caller_id: str | None, tracking: bool, observed_generation: int = 0) -> Reply:
        """Acknowledge (tracking=True) or opt out (tracking=False) for caller_id.

        observed_generation is ignored when opting out. Raises
        StaleAcknowledgement for a mismatched counter and IdentityUnavailable
        for a missing caller id; neither changes state.
        """
        if not caller_id:
            raise IdentityUnavailable()
        if tracking:
            outcome = self._registry.acknowledge(caller_id, observed_generation)
        else:
            outcome = self._registry.stop_tracking(caller_id)

        generation = self._clock.current()
        if outcome is Outcome.BECAME_READY:
            return Reply(generation, (self._ready(generation),))
        return Reply(generation)

    def handle_watcher_disconnected(self, watcher_id: str) -> Reply:
        """The transport saw watcher_id leave the bus; stop tracking it."""
        return self.update_watcher(watcher_id, False, 0)

    def _ready(self, generation: int) -> Notification:
        logger.info("All watchers adjusted to generation %d, system ready", generation)
        return self._emit(SystemReady())

    def _emit(self, notification: Notification) -> Notification:
        self.notifications.emit(notification)
        return notification

    def __repr__(self) -> str:
        return f"Coordinator(generation={self._clock.current()}, {self._registry!r})"
