"""High-level async client for Nostr relays."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import secrets
from collections.abc import Sequence
from typing import Any, TypeVar

import aiohttp
from pydantic import ValidationError

from pynostrstore._constants import USER_AGENT
from pynostrstore._relay import RelayConnection, RelaySubscription
from pynostrstore.config import NostrConfig, StoreOptions, SubscriptionOptions
from pynostrstore.exceptions import NostrError, RelayTransportError
from pynostrstore.ingestion.reposts import FetchErrorHook
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.factory import IDENTITY, EventFactory
from pynostrstore.models.filter import NostrFilter
from pynostrstore.store import EventStore, normalize_filters

_logger = logging.getLogger(__name__)

T = TypeVar("T", bound=NostrEvent)


class NostrClient:
    """Async client for a pool of Nostr relays.

    Usage::

        async with NostrClient(NostrConfig.from_env()) as client:
            store = client.store_subscribe(NostrFilter(kinds=[1], limit=50))
            unsubscribe = store.subscribe(render)
    """

    def __init__(
        self,
        config: NostrConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or NostrConfig()
        self._external_session = session is not None
        self._http_session = session
        self._loop: asyncio.AbstractEventLoop | None = None
        self._relays: dict[str, RelayConnection] = {}
        self._subscriptions: dict[str, RelaySubscription] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._close_sends: set[asyncio.Task[Any]] = set()

    @property
    def config(self) -> NostrConfig:
        return self._config

    @property
    def active_subscriptions(self) -> list[RelaySubscription]:
        return list(self._subscriptions.values())

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> NostrClient:
        self._loop = asyncio.get_running_loop()
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription.stop()
        # Let the CLOSE frames queued by stop() go out before tearing down.
        if self._close_sends:
            await asyncio.wait(list(self._close_sends), timeout=self._config.connect_timeout)
        for task in list(self._tasks):
            task.cancel()
        for relay in list(self._relays.values()):
            await relay.close()
        self._relays.clear()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._loop = None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        filters: NostrFilter | Sequence[NostrFilter],
        options: SubscriptionOptions | None = None,
    ) -> RelaySubscription:
        """Open a subscription on every relay; returns immediately.

        The ``REQ`` frames are sent in the background. Register ``event`` /
        ``eose`` callbacks on the returned subscription right away.
        """
        options = options or SubscriptionOptions()
        loop = self._require_loop()
        sub_id = options.sub_id or secrets.token_hex(8)
        eose_timeout = options.eose_timeout if options.eose_timeout is not None else self._config.eose_timeout
        subscription = RelaySubscription(
            sub_id,
            normalize_filters(filters),
            relay_urls=self._config.relay_urls,
            options=options,
            eose_timeout=eose_timeout,
            on_stop=self._release,
        )
        self._subscriptions[sub_id] = subscription
        subscription.arm_eose_timer(loop)
        self._spawn(self._open(subscription))
        return subscription

    async def fetch_events(
        self,
        filters: NostrFilter | Sequence[NostrFilter],
        options: SubscriptionOptions | None = None,
    ) -> list[NostrEvent]:
        """Collect stored events until EOSE or :attr:`NostrConfig.fetch_timeout`."""
        loop = self._require_loop()
        options = dataclasses.replace(options or SubscriptionOptions(), close_on_eose=True)
        done: asyncio.Future[None] = loop.create_future()
        collected: list[NostrEvent] = []

        def _finish() -> None:
            if not done.done():
                done.set_result(None)

        subscription = self.subscribe(filters, options)
        subscription.on("event", collected.append)
        subscription.on("eose", _finish)
        try:
            await asyncio.wait_for(done, self._config.fetch_timeout)
        except TimeoutError:
            _logger.debug("fetch timed out for subscription %s", subscription.sub_id)
        finally:
            subscription.stop()
        return collected

    async def fetch_event(
        self,
        filter: NostrFilter,
        options: SubscriptionOptions | None = None,
    ) -> NostrEvent | None:
        """Newest event matching *filter*, or ``None``."""
        events = await self.fetch_events([filter], options)
        if not events:
            return None
        return max(events, key=lambda e: e.created_at)

    def store_subscribe(
        self,
        filters: NostrFilter | Sequence[NostrFilter],
        options: StoreOptions | None = None,
        factory: EventFactory[T] = IDENTITY,  # type: ignore[assignment]
        *,
        on_fetch_error: FetchErrorHook | None = None,
    ) -> EventStore[T]:
        """Create a live, ref-counted :class:`EventStore` backed by this client."""
        return EventStore(
            self,
            filters,
            options=options,
            factory=factory,
            loop=self._require_loop(),
            on_fetch_error=on_fetch_error,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise NostrError("Client not initialized. Use 'async with NostrClient(...) as client:'")
        return self._loop

    def _relay(self, url: str) -> RelayConnection:
        relay = self._relays.get(url)
        if relay is None:
            if self._http_session is None:
                raise NostrError("Client not initialized. Use 'async with NostrClient(...) as client:'")
            relay = RelayConnection(url, self._http_session, config=self._config, on_frame=self._on_frame)
            self._relays[url] = relay
        return relay

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = self._require_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _open(self, subscription: RelaySubscription) -> None:
        if not subscription.relay_urls:
            subscription.handle_eose("")
            return
        frame = subscription.request_frame()

        async def _send(url: str) -> None:
            try:
                await self._relay(url).send(frame)
            except RelayTransportError:
                # A dead relay must not hold back EOSE for the others.
                _logger.debug("REQ %s to %s failed", subscription.sub_id, url, exc_info=True)
                subscription.handle_eose(url)

        await asyncio.gather(*(_send(url) for url in subscription.relay_urls))

    def _release(self, subscription: RelaySubscription) -> None:
        if self._subscriptions.pop(subscription.sub_id, None) is None:
            return
        if self._loop is None:
            return
        for url in subscription.relay_urls:
            relay = self._relays.get(url)
            if relay is not None and relay.is_connected:
                task = self._spawn(self._close_on(relay, subscription.sub_id))
                self._close_sends.add(task)
                task.add_done_callback(self._close_sends.discard)

    async def _close_on(self, relay: RelayConnection, sub_id: str) -> None:
        try:
            await relay.send(["CLOSE", sub_id])
        except RelayTransportError:
            _logger.debug("CLOSE %s to %s failed", sub_id, relay.url, exc_info=True)

    def _on_frame(self, relay: RelayConnection, frame: list[Any]) -> None:
        label = frame[0]
        if label == "NOTICE":
            _logger.info("Relay %s notice: %s", relay.url, frame[1] if len(frame) > 1 else "")
            return
        if label not in ("EVENT", "EOSE", "CLOSED") or len(frame) < 2:
            return

        subscription = self._subscriptions.get(str(frame[1]))
        if subscription is None:
            return

        if label == "EOSE":
            subscription.handle_eose(relay.url)
        elif label == "CLOSED":
            subscription.handle_closed(relay.url, str(frame[2]) if len(frame) > 2 else "")
        elif len(frame) > 2:
            try:
                event = NostrEvent.model_validate(frame[2])
            except ValidationError:
                _logger.debug("Dropping undecodable event from %s", relay.url, exc_info=True)
                return
            subscription.handle_event(relay.url, event)
