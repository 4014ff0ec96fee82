"""Merge inbound events into the ordered collection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from pynostrstore._constants import is_repost_kind
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.factory import IDENTITY, EventFactory
from pynostrstore.state.collection import StoreState, StoredEvent

if TYPE_CHECKING:
    from pynostrstore.ingestion.reposts import RepostResolver

_logger = logging.getLogger(__name__)

T = TypeVar("T", bound=NostrEvent)


class EventIngestor(Generic[T]):
    """Classifies, deduplicates and inserts events.

    Idempotent per dedup key: an event whose key is already present is
    dropped, never re-inserted or updated in place.
    """

    def __init__(
        self,
        state: StoreState[T],
        *,
        factory: EventFactory[T] = IDENTITY,  # type: ignore[assignment]
        handle_reposts: bool = False,
    ) -> None:
        self._state = state
        self._factory = factory
        self._handle_reposts = handle_reposts
        self._resolver: RepostResolver[T] | None = None

    @property
    def factory(self) -> EventFactory[T]:
        return self._factory

    def attach_resolver(self, resolver: RepostResolver[T]) -> None:
        self._resolver = resolver

    def ingest(self, event: NostrEvent) -> StoredEvent[T] | None:
        """Merge *event*; returns the new entry, or ``None`` if nothing was inserted."""
        if self._handle_reposts and self._resolver is not None and is_repost_kind(event.kind):
            self._resolver.handle_repost(event)
            return None

        projected = self._factory.from_event(event)
        key = event.tag_id()
        stored = self._state.collection.insert(key, projected)
        if stored is None:
            # Reposts may still be parked under this copy's id.
            existing = self._state.collection.get(key)
            if existing is not None and self._resolver is not None:
                if self._resolver.attach_pending(existing, event.id):
                    self._state.publish()
            return None

        _logger.debug("Stored event key=%s kind=%s created_at=%s", key, event.kind, event.created_at)
        if self._resolver is not None:
            self._resolver.attach_pending(stored)
        self._state.publish()
        return stored
