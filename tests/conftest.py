from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from pynostrstore.config import SubscriptionOptions
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.filter import NostrFilter


def make_event(
    event_id: str,
    created_at: int,
    *,
    kind: int = 1,
    pubkey: str = "pk1",
    tags: list[list[str]] | None = None,
    content: str = "",
) -> NostrEvent:
    return NostrEvent(id=event_id, pubkey=pubkey, created_at=created_at, kind=kind, tags=tags or [], content=content)


def make_repost(event_id: str, created_at: int, *targets: str, kind: int = 6, content: str = "") -> NostrEvent:
    return make_event(
        event_id,
        created_at,
        kind=kind,
        tags=[["e", target] for target in targets],
        content=content,
    )


class FakeSubscription:
    def __init__(self, filters: Sequence[NostrFilter], options: SubscriptionOptions | None) -> None:
        self.filters = list(filters)
        self.options = options
        self.callbacks: dict[str, list[Callable[..., None]]] = {"event": [], "eose": [], "closed": []}
        self.stopped = False

    def on(self, name: str, callback: Callable[..., None]) -> None:
        self.callbacks[name].append(callback)

    def stop(self) -> None:
        self.stopped = True

    def emit_event(self, event: NostrEvent) -> None:
        for callback in self.callbacks["event"]:
            callback(event)

    def emit_eose(self) -> None:
        for callback in self.callbacks["eose"]:
            callback()


class FakeClient:
    """In-memory stand-in for NostrClient.

    ``remote`` holds the events a relay would return to ``fetch_event``.
    Setting ``gate`` holds every fetch until the event is set.
    """

    def __init__(self) -> None:
        self.subscriptions: list[FakeSubscription] = []
        self.remote: list[NostrEvent] = []
        self.fetches: list[NostrFilter] = []
        self.fetch_error: Exception | None = None
        self.gate: asyncio.Event | None = None

    @property
    def last(self) -> FakeSubscription:
        return self.subscriptions[-1]

    @property
    def active(self) -> list[FakeSubscription]:
        return [sub for sub in self.subscriptions if not sub.stopped]

    def subscribe(self, filters: Sequence[NostrFilter], options: SubscriptionOptions | None = None) -> FakeSubscription:
        subscription = FakeSubscription(filters, options)
        self.subscriptions.append(subscription)
        return subscription

    async def fetch_event(self, filter: NostrFilter, options: SubscriptionOptions | None = None) -> NostrEvent | None:
        self.fetches.append(filter)
        if self.gate is not None:
            await self.gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        matches = [event for event in self.remote if filter.matches(event)]
        return max(matches, key=lambda e: e.created_at) if matches else None


class Recorder:
    def __init__(self) -> None:
        self.snapshots: list[list[Any]] = []

    def __call__(self, value: list[Any]) -> None:
        self.snapshots.append(value)


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
