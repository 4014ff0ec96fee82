"""Ref-counted subscription lifecycle.

States::

    Idle (ref_count == 0, no subscription)
      -> Active (ref_count >= 1, subscription running)
      -> PendingUnsubscribe (ref_count == 0, grace timer running)
      -> Idle

A ``ref()`` during ``PendingUnsubscribe`` cancels the grace timer; the
subscription is never interrupted.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, TypeVar

from pynostrstore.config import StoreOptions
from pynostrstore.exceptions import StoreConfigError
from pynostrstore.ingestion.ingestor import EventIngestor
from pynostrstore.models.event import NostrEvent
from pynostrstore.state.collection import StoreState

if TYPE_CHECKING:
    from pynostrstore._relay import Subscription, SubscriptionClient

_logger = logging.getLogger(__name__)

T = TypeVar("T", bound=NostrEvent)


class LifecycleState(enum.StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    PENDING_UNSUBSCRIBE = "pending_unsubscribe"


class SubscriptionLifecycleManager(Generic[T]):
    """Starts the subscription on first interest and stops it when interest is gone."""

    def __init__(
        self,
        state: StoreState[T],
        client: SubscriptionClient,
        ingestor: EventIngestor[T],
        *,
        options: StoreOptions,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._state = state
        self._client = client
        self._ingestor = ingestor
        self._options = options
        self._loop = loop
        self._subscription: Subscription | None = None
        self._eose_callbacks: list[Callable[[], None]] = []
        self._grace_handle: asyncio.TimerHandle | None = None

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    @property
    def lifecycle_state(self) -> LifecycleState:
        if self._subscription is None:
            return LifecycleState.IDLE
        if self._grace_handle is not None:
            return LifecycleState.PENDING_UNSUBSCRIBE
        return LifecycleState.ACTIVE

    def ref(self) -> int:
        self._state.ref_count += 1
        self._cancel_grace()
        if self._state.ref_count == 1 and self._subscription is None:
            self.start_subscription()
        return self._state.ref_count

    def unref(self) -> int:
        if self._state.ref_count == 0:
            _logger.debug("unref() without a matching ref(); ignoring")
            return 0
        self._state.ref_count -= 1
        if self._state.ref_count > 0:
            return self._state.ref_count

        grace = self._options.grace_seconds
        loop = self._timer_loop() if grace is not None else None
        if loop is None or self._subscription is None:
            if grace is not None:
                _logger.debug("No running loop for the grace timer; unsubscribing now")
            self.unsubscribe()
        else:
            self._cancel_grace()
            self._grace_handle = loop.call_later(grace, self._on_grace_elapsed)
            _logger.debug("Last ref dropped; unsubscribing in %.3fs", grace)
        return self._state.ref_count

    def start_subscription(self) -> None:
        """Open the live subscription for the active filter set."""
        if self._state.filters is None:
            raise StoreConfigError("Cannot start a subscription without filters")
        if self._subscription is not None:
            self.unsubscribe()

        # Repost filters ride along on the request but never join the filter set.
        filters = [*self._state.filters, *(self._options.reposts_filters or ())]
        subscription = self._client.subscribe(filters, self._options.subscription)
        subscription.on("event", self._ingestor.ingest)
        for callback in self._eose_callbacks:
            subscription.on("eose", callback)
        self._subscription = subscription
        _logger.debug("Subscription started with %d filter(s)", len(filters))

    def unsubscribe(self) -> None:
        """Stop the subscription if one is running. Idempotent."""
        self._cancel_grace()
        subscription = self._subscription
        self._subscription = None
        if subscription is None:
            return
        subscription.stop()
        _logger.debug("Subscription stopped")

    def on_eose(self, callback: Callable[[], None]) -> None:
        """Run *callback* on end-of-stored-events of this and every later subscription."""
        self._eose_callbacks.append(callback)
        if self._subscription is not None:
            self._subscription.on("eose", callback)

    def _on_grace_elapsed(self) -> None:
        self._grace_handle = None
        if self._state.ref_count == 0:
            self.unsubscribe()

    def _timer_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _cancel_grace(self) -> None:
        handle = self._grace_handle
        self._grace_handle = None
        if handle is not None:
            handle.cancel()
