"""Tests for EventStream — the notification stream the coordinator publishes on."""

from sysgenid import EventStream, NewGeneration, SystemReady


class TestEmitSubscribe:
    """Core emit/subscribe behavior."""

    def test_subscribe_receives_emitted_values(self):
        stream = EventStream()
        received = []
        stream.subscribe(received.append)
        stream.emit(NewGeneration(1))
        stream.emit(SystemReady())
        assert received == [NewGeneration(1), SystemReady()]

    def test_subscribers_called_in_order(self):
        stream = EventStream()
        calls = []
        stream.subscribe(lambda v: calls.append(("a", v)))
        stream.subscribe(lambda v: calls.append(("b", v)))
        stream.emit(1)
        assert calls == [("a", 1), ("b", 1)]

    def test_unsubscribe(self):
        stream = EventStream()
        received = []
        unsub = stream.subscribe(received.append)
        stream.emit(1)
        unsub()
        stream.emit(2)
        assert received == [1]

    def test_unsubscribe_idempotent(self):
        stream = EventStream()
        unsub = stream.subscribe(lambda v: None)
        unsub()
        unsub()  # should not raise

    def test_unsubscribe_during_emit(self):
        stream = EventStream()
        received = []
        unsubs = []

        def once(v):
            received.append(v)
            unsubs[0]()

        unsubs.append(stream.subscribe(once))
        stream.emit(1)
        stream.emit(2)
        assert received == [1]


class TestOperators:
    def test_map_transforms_values(self):
        stream = EventStream()
        counters = stream.map(lambda n: getattr(n, "counter", None))
        received = []
        counters.subscribe(received.append)
        stream.emit(NewGeneration(3))
        stream.emit(SystemReady())
        assert received == [3, None]

    def test_filter_passes_matching_values(self):
        stream = EventStream()
        evens = stream.filter(lambda v: v % 2 == 0)
        received = []
        evens.subscribe(received.append)
        for v in range(5):
            stream.emit(v)
        assert received == [0, 2, 4]

    def test_of_type(self):
        stream = EventStream()
        ready = stream.of_type(SystemReady)
        received = []
        ready.subscribe(received.append)
        stream.emit(NewGeneration(1))
        stream.emit(SystemReady())
        assert received == [SystemReady()]

    def test_filter_then_map(self):
        stream = EventStream()
        result = stream.of_type(NewGeneration).map(lambda n: n.counter * 10)
        received = []
        result.subscribe(received.append)
        stream.emit(SystemReady())
        stream.emit(NewGeneration(2))
        assert received == [20]


class TestDispose:
    """dispose() tears down streams and children."""

    def test_emit_after_dispose_is_noop(self):
        stream = EventStream()
        received = []
        stream.subscribe(received.append)
        stream.dispose()
        stream.emit(1)
        assert received == []
        assert stream.disposed

    def test_dispose_propagates_to_children(self):
        parent = EventStream()
        child = parent.map(lambda v: v)
        grandchild = child.filter(lambda v: True)

        parent.dispose()

        assert child.disposed
        assert grandchild.disposed

    def test_child_dispose_does_not_affect_parent(self):
        parent = EventStream()
        child = parent.map(lambda v: v)
        received_parent = []
        parent.subscribe(received_parent.append)

        child.dispose()

        parent.emit(1)
        assert received_parent == [1]
        assert not parent.disposed

    def test_child_dispose_unsubscribes_from_parent(self):
        parent = EventStream()
        calls = []
        mapped = parent.map(calls.append)
        filtered = parent.filter(lambda v: calls.append(v) or True)

        mapped.dispose()
        filtered.dispose()

        parent.emit(1)
        assert calls == []
        assert parent._subscribers == []
        assert parent._children == []

    def test_parent_dispose_after_child_dispose(self):
        parent = EventStream()
        child = parent.map(lambda v: v)
        child.dispose()
        parent.dispose()  # should not raise
        assert parent.disposed
