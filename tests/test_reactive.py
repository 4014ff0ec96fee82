from __future__ import annotations

from pynostrstore.reactive import Writable


def test_subscribe_calls_listener_immediately() -> None:
    store: Writable[int] = Writable(1)
    seen: list[int] = []
    store.subscribe(seen.append)
    store.set(2)
    store.update(lambda v: v + 10)

    assert seen == [1, 2, 12]
    assert store.get() == 12


def test_unsubscribe_stops_delivery_and_is_idempotent() -> None:
    store: Writable[str] = Writable("a")
    seen: list[str] = []
    unsubscribe = store.subscribe(seen.append)
    unsubscribe()
    unsubscribe()
    store.set("b")

    assert seen == ["a"]
    assert store.listener_count == 0


def test_listener_may_unsubscribe_during_delivery() -> None:
    store: Writable[int] = Writable(0)
    seen: list[int] = []
    handles: list = []

    def once(value: int) -> None:
        seen.append(value)
        if value and handles:
            handles[0]()

    handles.append(store.subscribe(once))
    store.set(1)
    store.set(2)

    assert seen == [0, 1]
