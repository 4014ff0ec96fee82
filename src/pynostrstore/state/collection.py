"""Owned store state: the ordered collection, its seen keys, ref count and filters.

This is the only place the collection is mutated. The ingestion layer and
the lifecycle/filter controllers all operate on one shared
:class:`StoreState` instance.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pynostrstore.models.event import NostrEvent
from pynostrstore.models.filter import NostrFilter
from pynostrstore.reactive import Writable

T = TypeVar("T", bound=NostrEvent)


@dataclass(slots=True, eq=False)
class StoredEvent(Generic[T]):
    """An event held by a store, plus the reposts that reference it.

    ``reposted_by_events`` stays ``None`` until the first repost attaches
    and is only ever appended to. Unknown attributes are read from the
    wrapped event, so typed projections keep their properties.
    """

    event: T
    key: str
    reposted_by_events: list[NostrEvent] | None = None

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def kind(self) -> int:
        return self.event.kind

    @property
    def created_at(self) -> int:
        return self.event.created_at

    def add_repost(self, repost: NostrEvent) -> bool:
        """Append *repost*; returns ``False`` if it was already attached."""
        if self.reposted_by_events is None:
            self.reposted_by_events = []
        if any(existing.id == repost.id for existing in self.reposted_by_events):
            return False
        self.reposted_by_events.append(repost)
        return True

    def __getattr__(self, name: str) -> Any:
        if name in ("event", "key", "reposted_by_events"):
            raise AttributeError(name)
        return getattr(self.event, name)


class EventCollection(Generic[T]):
    """Events sorted by ``created_at`` descending, unique by dedup key.

    Entries with equal ``created_at`` keep arrival order: a new entry goes
    immediately before the first strictly older one. Entries are indexed by
    dedup key and by event id; the two differ for addressable events.
    """

    def __init__(self) -> None:
        self._entries: list[StoredEvent[T]] = []
        self._by_key: dict[str, StoredEvent[T]] = {}
        self._by_id: dict[str, StoredEvent[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StoredEvent[T]]:
        return iter(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    @property
    def seen_keys(self) -> frozenset[str]:
        return frozenset(self._by_key)

    def get(self, key: str) -> StoredEvent[T] | None:
        return self._by_key.get(key)

    def find(self, target: str) -> StoredEvent[T] | None:
        """Entry referenced by *target*, either a dedup key or an event id."""
        return self._by_key.get(target) or self._by_id.get(target)

    def insert(self, key: str, event: T) -> StoredEvent[T] | None:
        """Insert *event* under *key*; ``None`` if the key was already seen."""
        if key in self._by_key:
            return None
        stored: StoredEvent[T] = StoredEvent(event=event, key=key)
        index = bisect.bisect_right(self._entries, -event.created_at, key=lambda e: -e.created_at)
        self._entries.insert(index, stored)
        self._by_key[key] = stored
        if event.id:
            self._by_id.setdefault(event.id, stored)
        return stored

    def snapshot(self) -> list[StoredEvent[T]]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._by_key.clear()
        self._by_id.clear()


@dataclass(eq=False)
class StoreState(Generic[T]):
    """Everything a single event store owns.

    ``generation`` increases on every clear so that late fetch results
    issued against a previous filter set can be recognised and dropped.
    """

    output: Writable[list[StoredEvent[T]]] = field(default_factory=lambda: Writable([]))
    collection: EventCollection[T] = field(default_factory=EventCollection)
    filters: list[NostrFilter] | None = None
    ref_count: int = 0
    generation: int = 0
    pending_reposts: dict[str, list[NostrEvent]] = field(default_factory=dict)

    def publish(self) -> None:
        self.output.set(self.collection.snapshot())

    def clear(self) -> None:
        self.collection.clear()
        self.pending_reposts.clear()
        self.generation += 1
        self.publish()
