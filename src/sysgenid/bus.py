"""D-Bus service — exposes a Coordinator as com.RFC.sysgenid over jeepney.

The service is single-threaded: serve() receives one message at a time and
hands it to dispatch(), which returns every outbound message that message
produced (method reply first, then any signals). dispatch() never touches
the connection, so it can be driven directly with constructed messages.

Caller identity is the sender header the bus daemon stamps on each method
call. Disconnects arrive as NameOwnerChanged from the bus daemon itself.
"""

from __future__ import annotations

import collections
import logging
import threading

from jeepney.bus_messages import MatchRule, message_bus
from jeepney.io.blocking import open_dbus_connection
from jeepney.low_level import HeaderFields, Message, MessageFlag, MessageType
from jeepney.wrappers import DBusAddress, new_error, new_method_return, new_signal, unwrap_msg

from sysgenid.config import Settings
from sysgenid.coordinator import Coordinator
from sysgenid.errors import InvariantViolation, RejectedCall, SysGenIdError
from sysgenid.interface import (
    INTERFACE,
    INTROSPECTABLE,
    METHODS,
    OBJECT_PATH,
    PEER,
    SIGNALS,
    introspect_path,
)
from sysgenid.notifications import NewGeneration, Notification

logger = logging.getLogger("sysgenid.bus")

BUS_DAEMON = "org.freedesktop.DBus"

NAME_OWNER_CHANGED = MatchRule(
    type="signal",
    sender=BUS_DAEMON,
    interface=BUS_DAEMON,
    member="NameOwnerChanged",
    path="/org/freedesktop/DBus",
)

# RequestName flags and replies
NAME_FLAG_REPLACE_EXISTING = 0x2
NAME_FLAG_DO_NOT_QUEUE = 0x4
NAME_PRIMARY_OWNER = 1
NAME_ALREADY_OWNER = 4

ERROR_FAILED = "org.freedesktop.DBus.Error.Failed"
ERROR_INVALID_ARGS = "org.freedesktop.DBus.Error.InvalidArgs"
ERROR_UNKNOWN_METHOD = "org.freedesktop.DBus.Error.UnknownMethod"
ERROR_UNKNOWN_INTERFACE = "org.freedesktop.DBus.Error.UnknownInterface"
ERROR_UNKNOWN_OBJECT = "org.freedesktop.DBus.Error.UnknownObject"


class MethodError(Exception):
    """Reply to the current method call with a D-Bus error."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = name


class SysGenIdService:
    """Bridges bus messages to Coordinator operations."""

    def __init__(self, coordinator: Coordinator, settings: Settings | None = None) -> None:
        self.coordinator = coordinator
        self.settings = settings if settings is not None else Settings()
        self._emitter = DBusAddress(OBJECT_PATH, interface=INTERFACE)
        self._outbox: collections.deque[Message] = collections.deque()
        self._signals = coordinator.notifications.map(self.signal_message)
        self._signals.subscribe(self._outbox.append)
        self._stopping = threading.Event()
        self._handlers = {
            "GetSysGenCounter": self._get_sys_gen_counter,
            "CountOutdatedWatchers": self._count_outdated_watchers,
            "UpdateWatcher": self._update_watcher,
            "TriggerSysGenUpdate": self._trigger_sys_gen_update,
        }

    def signal_message(self, notification: Notification) -> Message:
        """Build the broadcast signal for a coordinator notification."""
        signature = SIGNALS[notification.member]
        body = (notification.counter,) if isinstance(notification, NewGeneration) else ()
        return new_signal(self._emitter, notification.member, signature or None, body)

    # --- Dispatch ---

    def dispatch(self, msg: Message) -> list[Message]:
        """Handle one inbound message; return outbound messages in send order."""
        out: list[Message] = []
        kind = msg.header.message_type
        if kind is MessageType.method_call:
            reply = self._on_method_call(msg)
            if not msg.header.flags & MessageFlag.no_reply_expected:
                out.append(reply)
        elif kind is MessageType.signal and NAME_OWNER_CHANGED.matches(msg):
            self._on_name_owner_changed(msg)
        while self._outbox:
            out.append(self._outbox.popleft())
        return out

    def _on_method_call(self, msg: Message) -> Message:
        fields = msg.header.fields
        member = fields.get(HeaderFields.member)
        sender = fields.get(HeaderFields.sender)
        try:
            return self._route(msg, fields.get(HeaderFields.path), fields.get(HeaderFields.interface), member)
        except RejectedCall as e:
            logger.warning("Rejected %s from %s: %s", member, sender, e)
            return new_error(msg, e.dbus_error_name, "s", (str(e),))
        except MethodError as e:
            logger.debug("%s from %s: %s", e.name, sender, e)
            return new_error(msg, e.name, "s", (str(e),))
        except InvariantViolation:
            raise
        except Exception as e:
            logger.exception("Failed handling %s from %s", member, sender)
            return new_error(msg, ERROR_FAILED, "s", (str(e),))

    def _route(self, msg: Message, path: str | None, interface: str | None, member: str | None) -> Message:
        # The interface header is optional; without it, match on member alone.
        if interface in (None, INTROSPECTABLE) and member == "Introspect":
            xml = introspect_path(path or "")
            if xml is None:
                raise MethodError(ERROR_UNKNOWN_OBJECT, f"no object at {path}")
            return new_method_return(msg, "s", (xml,))
        if interface in (None, PEER) and member == "Ping":
            return new_method_return(msg)

        if path != OBJECT_PATH:
            raise MethodError(ERROR_UNKNOWN_OBJECT, f"no object at {path}")
        if interface not in (None, INTERFACE):
            raise MethodError(ERROR_UNKNOWN_INTERFACE, f"no interface {interface} at {path}")
        if member not in self._handlers:
            raise MethodError(ERROR_UNKNOWN_METHOD, f"no method {member} on {INTERFACE}")

        in_sig, out_sig = METHODS[member]
        signature = msg.header.fields.get(HeaderFields.signature, "")
        if signature != in_sig:
            raise MethodError(
                ERROR_INVALID_ARGS,
                f"{member} expects signature {in_sig!r}, got {signature!r}",
            )
        result = self._handlers[member](msg.header.fields.get(HeaderFields.sender), *msg.body)
        return new_method_return(msg, out_sig or None, result)

    # --- Method handlers: (sender, *args) -> reply body ---

    def _get_sys_gen_counter(self, sender):
        return (self.coordinator.get_generation(),)

    def _count_outdated_watchers(self, sender):
        return (self.coordinator.get_outdated_count(),)

    def _update_watcher(self, sender, tracking, watcher_counter):
        reply = self.coordinator.update_watcher(sender, bool(tracking), watcher_counter)
        return (reply.generation,)

    def _trigger_sys_gen_update(self, sender, min_gen):
        reply = self.coordinator.trigger_update(min_gen)
        logger.info("%s triggered generation %d (min_gen %d)", sender, reply.generation, min_gen)
        return ()

    # --- Bus daemon signals ---

    def _on_name_owner_changed(self, msg: Message) -> None:
        name, old_owner, new_owner = msg.body
        # A unique name leaving the bus: (":1.42", ":1.42", "")
        if new_owner or name != old_owner:
            return
        reply = self.coordinator.handle_watcher_disconnected(name)
        logger.debug("Watcher %s left the bus (generation %d)", name, reply.generation)

    # --- Lifecycle ---

    def request_name(self, connection) -> None:
        flags = NAME_FLAG_DO_NOT_QUEUE
        if self.settings.replace_existing:
            flags |= NAME_FLAG_REPLACE_EXISTING
        reply = connection.send_and_get_reply(message_bus.RequestName(self.settings.bus_name, flags))
        (code,) = unwrap_msg(reply)
        if code not in (NAME_PRIMARY_OWNER, NAME_ALREADY_OWNER):
            raise SysGenIdError(f"could not acquire bus name {self.settings.bus_name} (reply {code})")

    def serve(self, connection, poll_interval: float = 0.5) -> None:
        """Answer bus traffic on connection until stop() is called."""
        unwrap_msg(connection.send_and_get_reply(message_bus.AddMatch(NAME_OWNER_CHANGED)))
        self.request_name(connection)
        logger.info("Serving %s at %s as %s", INTERFACE, OBJECT_PATH, self.settings.bus_name)
        self._stopping.clear()
        while not self._stopping.is_set():
            try:
                msg = connection.receive(timeout=poll_interval)
            except TimeoutError:
                continue
            for out in self.dispatch(msg):
                connection.send(out)
        logger.info("Stopped serving %s", INTERFACE)

    def stop(self) -> None:
        self._stopping.set()

    def dispose(self) -> None:
        """Stop translating coordinator notifications into signals."""
        self._signals.dispose()
        self._outbox.clear()


def run(settings: Settings, coordinator: Coordinator | None = None) -> None:
    """Connect to the configured bus and serve until interrupted."""
    service = SysGenIdService(coordinator if coordinator is not None else Coordinator(), settings)
    connection = open_dbus_connection(bus=settings.bus)
    try:
        service.serve(connection)
    finally:
        service.dispose()
        connection.close()
