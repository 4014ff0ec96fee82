"""Reactive, ref-counted event store.

An :class:`EventStore` keeps a live, deduplicated view of the events
matching its filters, newest first, and republishes the whole list to its
listeners after every change. Consumers share one store through
:meth:`EventStore.ref` / :meth:`EventStore.unref`; the relay subscription
runs while at least one ref is held (plus an optional grace period).
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Generic, TypeVar

from pynostrstore._relay import Subscription, SubscriptionClient
from pynostrstore.config import StoreOptions
from pynostrstore.ingestion.ingestor import EventIngestor
from pynostrstore.ingestion.reposts import FetchErrorHook, RepostResolver
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.factory import IDENTITY, EventFactory
from pynostrstore.models.filter import NostrFilter
from pynostrstore.reactive import Listener, Unsubscriber
from pynostrstore.state.collection import StoredEvent, StoreState
from pynostrstore.state.filters import FilterController
from pynostrstore.state.lifecycle import LifecycleState, SubscriptionLifecycleManager

T = TypeVar("T", bound=NostrEvent)


def normalize_filters(filters: NostrFilter | Iterable[NostrFilter]) -> list[NostrFilter]:
    if isinstance(filters, NostrFilter):
        return [filters]
    return list(filters)


class EventStore(Generic[T]):
    """Live view over one subscription.

    Parameters
    ----------
    client : SubscriptionClient
        Transport used to subscribe and to fetch repost targets.
    filters : NostrFilter or sequence of NostrFilter, or None
        Initial filter set. ``None`` is only useful together with
        ``auto_start=False`` and a later :meth:`change_filters`.
    options : StoreOptions
        Store behaviour (auto start, repost filters, grace period).
    factory : EventFactory
        Typed projection applied to every stored event.
    loop : asyncio.AbstractEventLoop, optional
        Loop used for grace timers and repost fetches. Defaults to the
        running loop at the time the timer or fetch is needed. Without
        one, the last unref stops the subscription at once and missing
        repost targets are only picked up from the stream.
    on_fetch_error : callable, optional
        Called with ``(target_id, exception)`` when a repost target fetch
        fails. Failures are otherwise silent.
    """

    def __init__(
        self,
        client: SubscriptionClient,
        filters: NostrFilter | Sequence[NostrFilter] | None,
        *,
        options: StoreOptions | None = None,
        factory: EventFactory[T] = IDENTITY,  # type: ignore[assignment]
        loop: asyncio.AbstractEventLoop | None = None,
        on_fetch_error: FetchErrorHook | None = None,
    ) -> None:
        self.options = options or StoreOptions()
        self._state: StoreState[T] = StoreState(
            filters=normalize_filters(filters) if filters is not None else None,
        )
        self._ingestor: EventIngestor[T] = EventIngestor(
            self._state,
            factory=factory,
            handle_reposts=self.options.handles_reposts,
        )
        self._resolver: RepostResolver[T] = RepostResolver(
            self._state,
            self._ingestor,
            client,
            loop=loop,
            on_fetch_error=on_fetch_error,
        )
        self._lifecycle: SubscriptionLifecycleManager[T] = SubscriptionLifecycleManager(
            self._state,
            client,
            self._ingestor,
            options=self.options,
            loop=loop,
        )
        self._filters: FilterController[T] = FilterController(self._state, self._lifecycle)

        if self.options.auto_start:
            self.start_subscription()

    # ------------------------------------------------------------------
    # Reactive store contract
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener[list[StoredEvent[T]]]) -> Unsubscriber:
        return self._state.output.subscribe(listener)

    def get(self) -> list[StoredEvent[T]]:
        """Current snapshot, newest first."""
        return self._state.output.get()

    def __len__(self) -> int:
        return len(self._state.collection)

    def __iter__(self) -> Iterator[StoredEvent[T]]:
        return iter(self.get())

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def filters(self) -> list[NostrFilter] | None:
        return list(self._state.filters) if self._state.filters is not None else None

    @property
    def ref_count(self) -> int:
        return self._state.ref_count

    @property
    def subscription(self) -> Subscription | None:
        return self._lifecycle.subscription

    @property
    def lifecycle_state(self) -> LifecycleState:
        return self._lifecycle.lifecycle_state

    @property
    def seen_keys(self) -> frozenset[str]:
        return self._state.collection.seen_keys

    def get_event(self, key: str) -> StoredEvent[T] | None:
        return self._state.collection.get(key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ref(self) -> int:
        """Register interest; starts the subscription on the first ref."""
        return self._lifecycle.ref()

    def unref(self) -> int:
        """Drop interest; stops the subscription (maybe after a grace period) on the last."""
        return self._lifecycle.unref()

    def start_subscription(self) -> None:
        self._lifecycle.start_subscription()

    def unsubscribe(self) -> None:
        self._lifecycle.unsubscribe()

    def on_eose(self, callback: Callable[[], None]) -> None:
        self._lifecycle.on_eose(callback)

    def empty(self) -> None:
        self._filters.empty()

    def change_filters(self, filters: NostrFilter | Sequence[NostrFilter]) -> None:
        self._filters.change_filters(normalize_filters(filters))

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def handle_event(self, event: NostrEvent) -> StoredEvent[T] | None:
        """Merge one event as if it had arrived on the subscription."""
        return self._ingestor.ingest(event)

    def handle_repost(self, event: NostrEvent) -> None:
        self._resolver.handle_repost(event)

    async def wait_for_reposts(self) -> None:
        """Wait until every repost target fetch issued so far has settled."""
        await self._resolver.wait_idle()

    def close(self) -> None:
        """Stop the subscription and cancel outstanding repost fetches."""
        self._lifecycle.unsubscribe()
        self._resolver.cancel()
