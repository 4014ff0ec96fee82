"""Filter replacement and store reset."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Generic, TypeVar

from pynostrstore.models.event import NostrEvent
from pynostrstore.models.filter import NostrFilter
from pynostrstore.state.collection import StoreState
from pynostrstore.state.lifecycle import SubscriptionLifecycleManager

_logger = logging.getLogger(__name__)

T = TypeVar("T", bound=NostrEvent)


class FilterController(Generic[T]):
    def __init__(self, state: StoreState[T], lifecycle: SubscriptionLifecycleManager[T]) -> None:
        self._state = state
        self._lifecycle = lifecycle

    def empty(self) -> None:
        """Clear the collection and stop the subscription, regardless of refs."""
        self._state.clear()
        self._lifecycle.unsubscribe()

    def change_filters(self, filters: Iterable[NostrFilter]) -> None:
        """Swap the filter set; restart right away only while someone holds a ref."""
        self._state.filters = list(filters)
        self.empty()
        _logger.debug("Filters replaced (%d); ref_count=%d", len(self._state.filters), self._state.ref_count)
        if self._state.ref_count > 0:
            self._lifecycle.start_subscription()
