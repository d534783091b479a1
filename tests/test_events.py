import pytest

from ddb_registry.events import EventBus


def test_listeners_run_in_registration_order():
    bus = EventBus()
    calls = []
    first = lambda name: calls.append(("first", name))  # noqa: E731
    second = lambda name: calls.append(("second", name))  # noqa: E731

    bus.on("login", first)
    bus.on("login", second)
    bus.emit("login", "alice")

    assert calls == [("first", "alice"), ("second", "alice")]


def test_off_removes_listener():
    bus = EventBus()
    calls = []
    first = lambda: calls.append("first")  # noqa: E731
    second = lambda: calls.append("second")  # noqa: E731
    bus.on("login", first)
    bus.on("login", second)

    bus.off("login", first)
    bus.emit("login")

    assert calls == ["second"]


def test_duplicate_registration_is_ignored():
    bus = EventBus()
    calls = []

    def listener():
        calls.append(1)

    bus.on("logout", listener)
    bus.on("logout", listener)
    bus.emit("logout")

    assert calls == [1]
    assert bus.listeners("logout") == [listener]


def test_bound_methods_are_deduplicated():
    class Listener:
        def __init__(self):
            self.count = 0

        def handle(self):
            self.count += 1

    bus = EventBus()
    listener = Listener()
    bus.on("logout", listener.handle)
    bus.on("logout", listener.handle)
    bus.emit("logout")
    assert listener.count == 1

    bus.off("logout", listener.handle)
    assert bus.listeners("logout") == []


def test_events_are_independent():
    bus = EventBus()
    calls = []
    bus.on("login", lambda *args: calls.append("login"))
    bus.emit("logout")
    bus.off("unknown", print)
    assert calls == []


def test_failing_listener_propagates_and_stops_later_listeners():
    bus = EventBus()
    calls = []

    def failing():
        raise RuntimeError("boom")

    bus.on("login", failing)
    bus.on("login", lambda: calls.append("after"))

    with pytest.raises(RuntimeError, match="boom"):
        bus.emit("login")
    assert calls == []
