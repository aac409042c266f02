"""Outbound notifications and the result type of Coordinator operations.

The coordinator never talks to a transport. It returns the notifications an
operation produced; the bus layer turns them into D-Bus signals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class NewGeneration:
    """Broadcast on every successful trigger_update."""

    counter: int
    member = "NewGeneration"


@dataclass(frozen=True)
class SystemReady:
    """Broadcast once the outdated set empties."""

    member = "SystemReady"


Notification = Union[NewGeneration, SystemReady]


@dataclass(frozen=True)
class Reply:
    """What a coordinator operation hands back to its caller."""

    generation: int
    notifications: tuple[Notification, ...] = field(default=())

    @property
    def became_ready(self) -> bool:
        return any(isinstance(n, SystemReady) for n in self.notifications)
