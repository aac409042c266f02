"""Shared fixtures: an in-memory bus that routes jeepney messages to a SysGenIdService."""

import collections
import itertools
from contextlib import contextmanager

import pytest
from jeepney.low_level import HeaderFields, MessageType
from jeepney.wrappers import DBusAddress, new_method_return, new_signal

from sysgenid.bus import BUS_DAEMON, SysGenIdService
from sysgenid.config import Settings
from sysgenid.coordinator import Coordinator

FAST = Settings(call_timeout=0.1, ready_timeout=0.1, work_interval=0.5)


class LoopbackBus:
    """Delivers method calls to the service and broadcasts its signals.

    Nothing arrives asynchronously: callables queued with `later()` run one at
    a time whenever a connection waits on an empty filter queue.
    """

    def __init__(self, service: SysGenIdService) -> None:
        self.service = service
        self.connections: list["LoopbackConnection"] = []
        self.pending: collections.deque = collections.deque()
        self._names = itertools.count(1)
        self._serials = itertools.count(1)

    def connect(self) -> "LoopbackConnection":
        conn = LoopbackConnection(self, f":1.{next(self._names)}")
        self.connections.append(conn)
        return conn

    def later(self, fn) -> None:
        self.pending.append(fn)

    def deliver(self, msg):
        msg.header.serial = next(self._serials)
        if msg.header.fields.get(HeaderFields.destination) == BUS_DAEMON:
            member = msg.header.fields[HeaderFields.member]
            if member == "RequestName":
                return new_method_return(msg, "u", (1,))
            return new_method_return(msg)
        reply = None
        for out in self.service.dispatch(msg):
            if out.header.message_type is MessageType.signal:
                self.broadcast(out)
            elif out.header.fields.get(HeaderFields.reply_serial) == msg.header.serial:
                reply = out
        return reply

    def broadcast(self, signal) -> None:
        for conn in self.connections:
            conn.offer(signal)

    def disconnect(self, conn: "LoopbackConnection") -> None:
        self.connections.remove(conn)
        msg = new_signal(
            DBusAddress("/org/freedesktop/DBus", interface=BUS_DAEMON),
            "NameOwnerChanged",
            "sss",
            (conn.unique_name, conn.unique_name, ""),
        )
        msg.header.fields[HeaderFields.sender] = BUS_DAEMON
        for out in self.service.dispatch(msg):
            self.broadcast(out)


class LoopbackConnection:
    """The subset of jeepney's blocking DBusConnection the clients use."""

    def __init__(self, bus: LoopbackBus, unique_name: str) -> None:
        self.bus = bus
        self.unique_name = unique_name
        self.filters: list[tuple] = []
        self.sent: list = []

    def send_and_get_reply(self, msg, *, timeout=None):
        msg.header.fields[HeaderFields.sender] = self.unique_name
        msg.serialise(serial=1)  # marshalling errors surface as on a real connection
        self.sent.append(msg)
        return self.bus.deliver(msg)

    @contextmanager
    def filter(self, rule, *, queue=None, bufsize=1):
        q = queue if queue is not None else collections.deque(maxlen=bufsize)
        entry = (rule, q)
        self.filters.append(entry)
        try:
            yield q
        finally:
            self.filters.remove(entry)

    def offer(self, msg) -> None:
        for rule, q in self.filters:
            if rule.matches(msg):
                q.append(msg)

    def recv_until_filtered(self, queue, *, timeout=None):
        while not queue:
            if not self.bus.pending:
                raise TimeoutError
            self.bus.pending.popleft()()
        return queue.popleft()

    def close(self) -> None:
        pass


@pytest.fixture
def coordinator():
    return Coordinator()


@pytest.fixture
def service(coordinator):
    svc = SysGenIdService(coordinator, FAST)
    yield svc
    svc.dispose()


@pytest.fixture
def loopback(service):
    return LoopbackBus(service)


@pytest.fixture
def settings():
    return FAST
