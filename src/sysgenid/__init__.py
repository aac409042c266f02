"""SysGenID: a generation barrier coordinator for environment changes such as snapshot restores."""

from importlib.metadata import version as _version

__version__ = _version("sysgenid")

from sysgenid.clock import GenerationClock
from sysgenid.registry import WatcherRegistry, WatcherStatus, Outcome
from sysgenid.coordinator import Coordinator
from sysgenid.notifications import NewGeneration, SystemReady, Notification, Reply
from sysgenid.stream import EventStream
from sysgenid.config import Settings, load_settings
from sysgenid.errors import (
    SysGenIdError,
    RejectedCall,
    StaleAcknowledgement,
    IdentityUnavailable,
    GenerationOverflow,
    InvariantViolation,
    ConfigError,
)
# bus, proxy, overseer, watcher are transport-facing; import them explicitly

__all__ = [
    "GenerationClock",
    "WatcherRegistry",
    "WatcherStatus",
    "Outcome",
    "Coordinator",
    "NewGeneration",
    "SystemReady",
    "Notification",
    "Reply",
    "EventStream",
    "Settings",
    "load_settings",
    "SysGenIdError",
    "RejectedCall",
    "StaleAcknowledgement",
    "IdentityUnavailable",
    "GenerationOverflow",
    "InvariantViolation",
    "ConfigError",
]
