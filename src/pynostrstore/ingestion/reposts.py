"""Repost resolution.

Repost events (kind 6 / 16) are never stored as entries of their own.
Instead they are attached to the event they reference through
``StoredEvent.reposted_by_events``. When the target is not known yet the
repost is parked under the target key and the target is fetched in the
background; the back-link is attached as soon as the target lands,
whichever path (fetch, embedded copy, live stream) delivers it first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, TypeVar

from pynostrstore.ingestion.ingestor import EventIngestor
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.repost import Repost
from pynostrstore.state.collection import StoredEvent, StoreState

if TYPE_CHECKING:
    from pynostrstore._relay import SubscriptionClient

_logger = logging.getLogger(__name__)

T = TypeVar("T", bound=NostrEvent)

FetchErrorHook = Callable[[str, BaseException], None]


class RepostResolver(Generic[T]):
    """Attaches reposts to their targets, fetching missing targets once."""

    def __init__(
        self,
        state: StoreState[T],
        ingestor: EventIngestor[T],
        client: SubscriptionClient,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        on_fetch_error: FetchErrorHook | None = None,
    ) -> None:
        self._state = state
        self._ingestor = ingestor
        self._client = client
        self._loop = loop
        self._on_fetch_error = on_fetch_error
        self._in_flight: set[tuple[int, str]] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        ingestor.attach_resolver(self)

    def handle_repost(self, event: NostrEvent) -> None:
        repost = Repost.from_event(event)
        loop = self._fetch_loop()
        for target in repost.reposted_event_ids():
            # ``e`` tags carry ids, ``a`` tags carry addresses.
            stored = self._state.collection.find(target)
            if stored is not None:
                if stored.add_repost(event):
                    _logger.debug("Attached repost %s to %s", event.id, target)
                    self._state.publish()
                continue

            pending = self._state.pending_reposts.setdefault(target, [])
            if all(existing.id != event.id for existing in pending):
                pending.append(event)
            if loop is None:
                _logger.debug("No running loop; repost target %s waits for the stream", target)
                continue
            self._fetch(loop, repost, target)

    def attach_pending(self, stored: StoredEvent[T], *aliases: str) -> bool:
        """Attach reposts parked under *stored*'s key, id or *aliases*.

        Does not publish. Returns ``True`` if any repost was attached.
        """
        attached = False
        for target in dict.fromkeys((stored.key, stored.id, *aliases)):
            for repost in self._state.pending_reposts.pop(target, []):
                attached = stored.add_repost(repost) or attached
        return attached

    async def wait_idle(self) -> None:
        """Wait for every fetch issued so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _fetch_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _fetch(self, loop: asyncio.AbstractEventLoop, repost: Repost, target: str) -> None:
        flight = (self._state.generation, target)
        if flight in self._in_flight:
            return
        self._in_flight.add(flight)
        task = loop.create_task(self._resolve(repost, target, flight))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve(self, repost: Repost, target: str, flight: tuple[int, str]) -> None:
        if target not in self._state.pending_reposts:
            # Landed through another tag of the same repost or the stream.
            self._in_flight.discard(flight)
            return
        try:
            # Projection through the store factory happens once, in ingest().
            events = await repost.reposted_events(self._client, ids=[target])
        except Exception as exc:
            # Not retried and not surfaced to store listeners.
            _logger.debug("Repost target fetch failed target=%s", target, exc_info=True)
            self._report_failure(target, exc)
            return
        finally:
            self._in_flight.discard(flight)

        if flight[0] != self._state.generation:
            _logger.debug("Dropping repost target %s fetched for a cleared store", target)
            return
        if not events:
            _logger.debug("Repost target %s not found on relays", target)
            return
        for event in events:
            self._ingestor.ingest(event)

    def _report_failure(self, target: str, exc: BaseException) -> None:
        if self._on_fetch_error is None:
            return
        try:
            self._on_fetch_error(target, exc)
        except Exception:
            _logger.debug("on_fetch_error callback failed", exc_info=True)
