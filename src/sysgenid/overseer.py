"""Overseer: drives one environment change through the coordinator.

Around a snapshot restore an overseer would:
  1. quiesce the system (e.g. take networking down) before the snapshot,
  2. trigger a new generation once the system is loaded from the snapshot,
  3. wait for every tracked watcher to adjust (SystemReady),
  4. unquiesce, bringing the system back to its active state.

quiesce/unquiesce are hooks; by default they only log.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable

from sysgenid.config import Settings
from sysgenid.proxy import SysGenIdProxy, signal_rule

logger = logging.getLogger("sysgenid.overseer")


class SystemState(enum.Enum):
    QUIESCING = "quiescing"
    QUIESCED = "quiesced"
    ADJUSTING = "adjusting"
    ADJUSTED = "adjusted"
    UNQUIESCING = "unquiescing"
    READY = "ready"


def _noop() -> None:
    pass


class Overseer:
    """Runs the quiesce, trigger, wait, unquiesce cycle against the service."""

    def __init__(
        self,
        connection,
        settings: Settings | None = None,
        *,
        quiesce: Callable[[], None] = _noop,
        unquiesce: Callable[[], None] = _noop,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.connection = connection
        self.proxy = SysGenIdProxy(connection, self.settings.call_timeout, self.settings.bus_name)
        self.state = SystemState.READY
        self._quiesce = quiesce
        self._unquiesce = unquiesce

    def run(self, min_gen: int = 0) -> int:
        """Quiesce, bump the generation, wait for adjustment, unquiesce.

        Returns the generation the system adjusted to. Raises TimeoutError if
        SystemReady does not arrive within settings.ready_timeout; the
        system is then left quiesced.
        """
        rule = signal_rule("SystemReady")
        self.proxy.add_match(rule)
        # Subscribe before triggering: SystemReady may follow the trigger immediately.
        with self.connection.filter(rule) as ready:
            self.quiesce()
            generation = self.bump_generation(min_gen)
            self.wait_system_adjust(ready)
        self.unquiesce()
        return generation

    def quiesce(self) -> None:
        self.state = SystemState.QUIESCING
        logger.info("Quiescing system")
        self._quiesce()
        self.state = SystemState.QUIESCED

    def bump_generation(self, min_gen: int = 0) -> int:
        logger.info("Triggering new generation (min gen counter %d)", min_gen)
        self.proxy.trigger_update(min_gen)
        return self.proxy.get_generation()

    def wait_system_adjust(self, ready) -> None:
        """Block until the outdated watchers have caught up.

        ready is a filter queue already subscribed to SystemReady.
        """
        self.state = SystemState.ADJUSTING
        outdated = self.proxy.count_outdated_watchers()
        if outdated:
            logger.info("%d outdated watchers across the system, waiting for them", outdated)
            self.connection.recv_until_filtered(ready, timeout=self.settings.ready_timeout)
            logger.info("System adjusted (got SystemReady)")
        else:
            logger.info("No outdated watchers across the system, moving on")
        self.state = SystemState.ADJUSTED

    def unquiesce(self) -> None:
        self.state = SystemState.UNQUIESCING
        logger.info("Unquiescing system")
        self._unquiesce()
        self.state = SystemState.READY
        logger.info("System ready")
