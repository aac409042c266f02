"""Tests for the example Watcher, run over the in-memory loopback bus."""

import itertools

import pytest
from jeepney.wrappers import DBusErrorResponse

from sysgenid import SysGenIdError, WatcherStatus
from sysgenid.proxy import SysGenIdProxy
from sysgenid.watcher import Watcher


def _ids():
    return itertools.count(1).__next__


class TestRegistration:
    def test_tracked_registration(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings)
        assert watcher.register() == 0
        assert coordinator.registry.status(conn.unique_name) is WatcherStatus.CURRENT

    def test_untracked_registration(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings, tracking=False)
        assert watcher.register() == 0
        assert coordinator.registry.status(conn.unique_name) is WatcherStatus.UNTRACKED

    def test_registration_retries_when_generation_moves(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings, make_id=_ids())
        read = watcher.proxy.get_generation
        bumps = [True]

        def racing_read():
            counter = read()
            if bumps:
                bumps.pop()
                coordinator.trigger_update(0)
            return counter

        watcher.proxy.get_generation = racing_read
        assert watcher.register() == 1
        assert watcher.unique_id == 1  # registering never regenerates
        assert coordinator.registry.status(conn.unique_name) is WatcherStatus.CURRENT

    def test_registration_gives_up_after_max_attempts(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings, max_ack_attempts=2)
        read = watcher.proxy.get_generation

        def racing_read():
            counter = read()
            coordinator.trigger_update(0)
            return counter

        watcher.proxy.get_generation = racing_read
        with pytest.raises(SysGenIdError, match="kept changing"):
            watcher.register()
        assert coordinator.registry.status(conn.unique_name) is WatcherStatus.UNTRACKED

    def test_detach(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings)
        watcher.register()
        coordinator.trigger_update(3)
        assert watcher.detach() == 3
        assert not watcher.tracking
        assert coordinator.registry.status(conn.unique_name) is WatcherStatus.UNTRACKED


class TestAdjust:
    def test_adjust_acknowledges_and_regenerates_id(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings, make_id=_ids())
        watcher.register()
        coordinator.trigger_update(0)
        watcher.on_new_generation(1)
        assert watcher.dirty

        assert watcher.adjust() == 1
        assert watcher.unique_id == 2
        assert not watcher.dirty
        assert coordinator.get_outdated_count() == 0

    def test_retries_when_generation_moves(self, loopback, settings, coordinator):
        conn = loopback.connect()
        bumps = [True]

        def make_id():
            if bumps and watcher_ready:
                bumps.pop()
                coordinator.trigger_update(0)
            return object()

        watcher_ready = False
        watcher = Watcher(conn, settings, make_id=make_id)
        watcher.register()
        coordinator.trigger_update(0)
        watcher_ready = True

        assert watcher.adjust() == 2
        assert coordinator.registry.status(conn.unique_name) is WatcherStatus.CURRENT

    def test_gives_up_after_max_attempts(self, loopback, settings, coordinator):
        conn = loopback.connect()
        armed = []

        def make_id():
            if armed:
                coordinator.trigger_update(0)
            return object()

        watcher = Watcher(conn, settings, make_id=make_id, max_ack_attempts=2)
        watcher.register()
        armed.append(True)
        with pytest.raises(SysGenIdError, match="kept changing"):
            watcher.adjust()

    def test_other_errors_propagate(self, loopback, settings):
        conn = loopback.connect()
        watcher = Watcher(conn, settings)
        conn.unique_name = ""  # no sender identity reaches the service
        with pytest.raises(DBusErrorResponse) as exc:
            watcher.adjust()
        assert exc.value.name == "org.freedesktop.DBus.Error.Failed"


class TestRun:
    def test_adjusts_after_new_generation(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings, make_id=_ids())
        overseer = SysGenIdProxy(loopback.connect())
        loopback.later(lambda: overseer.trigger_update(0))

        watcher.run(iterations=3)

        assert watcher.ticks == 3
        assert watcher.generation == 1
        assert watcher.unique_id == 2
        assert coordinator.registry.status(conn.unique_name) is WatcherStatus.CURRENT
        assert coordinator.get_outdated_count() == 0

    def test_untracked_watcher_still_adjusts(self, loopback, settings, coordinator):
        conn = loopback.connect()
        watcher = Watcher(conn, settings, tracking=False, make_id=_ids())
        overseer = SysGenIdProxy(loopback.connect())
        loopback.later(lambda: overseer.trigger_update(5))

        watcher.run(iterations=2)

        assert watcher.generation == 5
        assert watcher.unique_id == 2
        assert coordinator.registry.tracked_count() == 0

    def test_quiet_bus_only_works(self, loopback, settings):
        watcher = Watcher(loopback.connect(), settings, make_id=_ids())
        watcher.run(iterations=2)
        assert watcher.ticks == 2
        assert watcher.unique_id == 1
