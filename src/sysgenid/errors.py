"""Error taxonomy for the SysGenID coordinator.

RejectedCall subclasses are caller-attributable and recoverable: the bus
service turns them into D-Bus error replies. InvariantViolation is a defect
and is never caught by the service loop.
"""

from __future__ import annotations


class SysGenIdError(Exception):
    """Base class for every error raised by sysgenid."""


class RejectedCall(SysGenIdError):
    """A call was refused with no state change. Safe to retry."""

    dbus_error_name = "org.freedesktop.DBus.Error.Failed"


class StaleAcknowledgement(RejectedCall):
    """A watcher acknowledged a generation other than the current one."""

    dbus_error_name = "org.freedesktop.DBus.Error.InvalidArgs"

    def __init__(self, observed: int, current: int) -> None:
        super().__init__(
            f"watcher_counter {observed} does not match current generation {current}"
        )
        self.observed = observed
        self.current = current


class IdentityUnavailable(RejectedCall):
    """The transport supplied no sender identity for the call."""

    def __init__(self) -> None:
        super().__init__("could not identify sender")


class GenerationOverflow(RejectedCall):
    """The counter cannot advance without leaving the u32 range."""

    dbus_error_name = "org.freedesktop.DBus.Error.LimitsExceeded"


class InvariantViolation(SysGenIdError):
    """Watcher bookkeeping is corrupt. Continuing could announce readiness wrongly."""


class ConfigError(SysGenIdError):
    """Configuration file, environment or flags hold an invalid value."""
