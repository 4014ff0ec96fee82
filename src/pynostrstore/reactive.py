"""Minimal writable store: set, update, subscribe, snapshot."""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")

Listener = Callable[[V], None]
Unsubscriber = Callable[[], None]


class Writable(Generic[V]):
    """A value holder that pushes every new value to its listeners.

    Listeners are invoked synchronously, in subscription order, and once
    immediately on :meth:`subscribe` with the current value.
    """

    def __init__(self, value: V) -> None:
        self._value = value
        self._listeners: list[Listener[V]] = []

    def get(self) -> V:
        return self._value

    def set(self, value: V) -> None:
        self._value = value
        for listener in list(self._listeners):
            listener(value)

    def update(self, fn: Callable[[V], V]) -> None:
        self.set(fn(self._value))

    def subscribe(self, listener: Listener[V]) -> Unsubscriber:
        self._listeners.append(listener)
        listener(self._value)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
