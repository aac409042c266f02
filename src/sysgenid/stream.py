"""Push-based notification stream with operator chaining.

The Coordinator publishes every Notification here. Consumers subscribe
directly, or derive streams with map/filter (each operator returns a new
stream). dispose() tears down a stream and everything downstream of it.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[T], None]] = []
        self._children: list[EventStream] = []  # downstream streams for dispose
        self._disposed = False
        self._parent_disposer: Disposer | None = None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def emit(self, value: T) -> None:
        """Push a value to all subscribers, in subscription order."""
        if self._disposed:
            return
        with self._lock:
            subscribers = list(self._subscribers)
        for cb in subscribers:
            cb(value)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback. Returns a function that removes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers.remove(callback)
                except ValueError:
                    pass  # already removed

        return _unsubscribe

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        child: EventStream[U] = EventStream()
        self._attach(child, lambda v: child.emit(fn(v)))
        return child

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = EventStream()
        self._attach(child, lambda v: child.emit(v) if fn(v) else None)
        return child

    def of_type(self, cls: type[U]) -> EventStream[U]:
        """Only pass events that are instances of cls."""
        return self.filter(lambda v: isinstance(v, cls))

    def dispose(self) -> None:
        """Tear down this stream and all downstream children."""
        self._disposed = True
        with self._lock:
            self._subscribers.clear()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child.dispose()
        if self._parent_disposer is not None:
            self._parent_disposer()
            self._parent_disposer = None

    def _attach(self, child: EventStream, forward: Callable[[T], None]) -> None:
        """Feed child from this stream; disposing child detaches both links."""
        remove_child = self._track_child(child)
        unsubscribe = self.subscribe(forward)

        def _detach() -> None:
            unsubscribe()
            remove_child()

        child._parent_disposer = _detach

    def _track_child(self, child: EventStream) -> Disposer:
        """Register child for dispose propagation. Returns a disposer that removes it."""
        with self._lock:
            self._children.append(child)

        def _remove() -> None:
            with self._lock:
                try:
                    self._children.remove(child)
                except ValueError:
                    pass

        return _remove
