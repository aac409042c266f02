"""Watcher: an application that re-derives process-unique data per generation.

The application does periodic work while listening for NewGeneration. A
signal only marks it dirty; the next tick adjusts (reads the counter,
regenerates its unique id) and, when tracked, acknowledges the counter back
so the overseer can see the system is adjusted.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from jeepney.wrappers import DBusErrorResponse

from sysgenid.config import Settings
from sysgenid.errors import SysGenIdError
from sysgenid.proxy import SysGenIdProxy, is_stale_acknowledgement, signal_rule

logger = logging.getLogger("sysgenid.watcher")


class Watcher:
    """Example application that re-derives its unique id on every new generation."""

    def __init__(
        self,
        connection,
        settings: Settings | None = None,
        *,
        tracking: bool = True,
        make_id: Callable[[], object] = uuid.uuid4,
        max_ack_attempts: int = 3,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.connection = connection
        self.proxy = SysGenIdProxy(connection, self.settings.call_timeout, self.settings.bus_name)
        self.tracking = tracking
        self.make_id = make_id
        self.max_ack_attempts = max_ack_attempts
        self.unique_id = make_id()
        self.dirty = False
        self.generation: int | None = None
        self.ticks = 0

    def register(self) -> int:
        """Read the current generation and, if tracking, ask to be tracked.

        Retries like adjust() when a trigger lands between the read and the
        acknowledgement.
        """
        return self._sync(regenerate=False)

    def on_new_generation(self, counter: int) -> None:
        logger.info("Got NewGeneration(%d), marking dirty", counter)
        self.dirty = True

    def adjust(self) -> int:
        """Regenerate unique data for the current generation and acknowledge it.

        A stale acknowledgement means the generation moved again while
        adjusting; re-read and adjust again, up to max_ack_attempts times.
        """
        return self._sync(regenerate=True)

    def _sync(self, regenerate: bool) -> int:
        for attempt in range(1, self.max_ack_attempts + 1):
            counter = self.proxy.get_generation()
            if regenerate:
                self.unique_id = self.make_id()
                self.dirty = False
                logger.info("Adjusted to generation %d: new id %s", counter, self.unique_id)
            if not self.tracking:
                self.generation = counter
                return counter
            try:
                self.generation = self._acknowledge(counter)
                return self.generation
            except DBusErrorResponse as e:
                if not is_stale_acknowledgement(e):
                    raise
                logger.warning("Generation moved past %d (attempt %d), re-adjusting", counter, attempt)
        raise SysGenIdError(f"generation kept changing after {self.max_ack_attempts} attempts")

    def detach(self) -> int:
        """Stop being tracked. Returns the latest generation."""
        counter = self.proxy.update_watcher(False, 0)
        self.tracking = False
        logger.info("Detached at generation %d", counter)
        return counter

    def do_work(self) -> None:
        logger.info("Doing periodic work (id %s)", self.unique_id)

    def run(self, iterations: int | None = None) -> None:
        """Work every settings.work_interval seconds; adjust when dirty."""
        rule = signal_rule("NewGeneration")
        self.proxy.add_match(rule)
        with self.connection.filter(rule, bufsize=16) as signals:
            self.register()
            while iterations is None or self.ticks < iterations:
                self._wait_tick(signals)
                if self.dirty:
                    self.adjust()
                self.do_work()
                self.ticks += 1

    def _wait_tick(self, signals) -> None:
        deadline = time.monotonic() + self.settings.work_interval
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            try:
                msg = self.connection.recv_until_filtered(signals, timeout=remaining)
            except TimeoutError:
                return
            self.on_new_generation(msg.body[0])

    def _acknowledge(self, counter: int) -> int:
        acked = self.proxy.update_watcher(True, counter)
        logger.info("Acknowledged generation %d", acked)
        return acked
