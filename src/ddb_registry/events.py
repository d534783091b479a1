"""Minimal synchronous event bus used for session lifecycle notifications."""

import typing

Listener = typing.Callable[..., typing.Any]


class EventBus:
    """Per-instance registry of listeners keyed by event name.

    Listeners run synchronously in registration order. An exception raised by
    a listener propagates to the caller of ``emit`` and the remaining
    listeners are not called.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, callback: Listener) -> None:
        """Register a listener. Registering the same callback twice is a no-op."""
        listeners = self._listeners.setdefault(event, [])
        if callback not in listeners:
            listeners.append(callback)

    def off(self, event: str, callback: Listener) -> None:
        """Remove a listener. Unknown callbacks are ignored."""
        self._listeners[event] = [
            cb for cb in self._listeners.get(event, []) if cb != callback
        ]

    def emit(self, event: str, *args: typing.Any) -> None:
        # Copy so listeners can unsubscribe while being notified
        for listener in list(self._listeners.get(event, [])):
            listener(*args)

    def listeners(self, event: str) -> list[Listener]:
        return list(self._listeners.get(event, []))
