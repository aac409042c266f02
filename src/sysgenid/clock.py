"""Generation counter."""

from __future__ import annotations


class GenerationClock:
    """Monotonic generation counter. Starts at 0 and only ever increases."""

    __slots__ = ("_counter",)

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("generation counter cannot be negative")
        self._counter = start

    def current(self) -> int:
        return self._counter

    def advance(self, minimum: int = 0) -> int:
        """Move to max(minimum, current + 1) and return the new value.

        A stale or zero minimum still advances by one, so a new generation
        never collides with a previous one.
        """
        self._counter = max(minimum, self._counter + 1)
        return self._counter

    def __repr__(self) -> str:
        return f"GenerationClock({self._counter})"
