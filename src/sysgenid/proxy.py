"""Client side of com.RFC.sysgenid: message generator, blocking proxy, match rules."""

from __future__ import annotations

from jeepney.bus_messages import MatchRule, message_bus
from jeepney.wrappers import DBusErrorResponse, MessageGenerator, new_method_call, unwrap_msg

from sysgenid.errors import StaleAcknowledgement
from sysgenid.interface import DEFAULT_BUS_NAME, INTERFACE, OBJECT_PATH


class SysGenId(MessageGenerator):
    """Builds method-call messages for the coordinator service."""

    interface = INTERFACE

    def __init__(self, object_path: str = OBJECT_PATH, bus_name: str = DEFAULT_BUS_NAME) -> None:
        super().__init__(object_path=object_path, bus_name=bus_name)

    def GetSysGenCounter(self):
        return new_method_call(self, "GetSysGenCounter")

    def CountOutdatedWatchers(self):
        return new_method_call(self, "CountOutdatedWatchers")

    def UpdateWatcher(self, tracking: bool, watcher_counter: int):
        return new_method_call(self, "UpdateWatcher", "bu", (tracking, watcher_counter))

    def TriggerSysGenUpdate(self, min_gen: int):
        return new_method_call(self, "TriggerSysGenUpdate", "u", (min_gen,))


def signal_rule(member: str) -> MatchRule:
    """Match rule for one of the service's broadcast signals."""
    return MatchRule(type="signal", interface=INTERFACE, member=member, path=OBJECT_PATH)


def is_stale_acknowledgement(error: DBusErrorResponse) -> bool:
    return error.name == StaleAcknowledgement.dbus_error_name


class SysGenIdProxy:
    """Blocking calls over a jeepney connection.

    Error replies raise jeepney's DBusErrorResponse.
    """

    def __init__(self, connection, timeout: float | None = None, bus_name: str = DEFAULT_BUS_NAME) -> None:
        self.connection = connection
        self.timeout = timeout
        self._msggen = SysGenId(bus_name=bus_name)

    def _call(self, msg) -> tuple:
        return unwrap_msg(self.connection.send_and_get_reply(msg, timeout=self.timeout))

    def get_generation(self) -> int:
        (counter,) = self._call(self._msggen.GetSysGenCounter())
        return counter

    def count_outdated_watchers(self) -> int:
        (count,) = self._call(self._msggen.CountOutdatedWatchers())
        return count

    def update_watcher(self, tracking: bool, watcher_counter: int = 0) -> int:
        (counter,) = self._call(self._msggen.UpdateWatcher(tracking, watcher_counter))
        return counter

    def trigger_update(self, min_gen: int = 0) -> None:
        self._call(self._msggen.TriggerSysGenUpdate(min_gen))

    def add_match(self, rule: MatchRule) -> None:
        """Ask the bus to route signals matching rule to this connection."""
        self._call(message_bus.AddMatch(rule))
