"""Internal relay transport: NIP-01 over aiohttp websockets.

Owns:
- the structural interfaces the store consumes (:class:`Subscription`,
  :class:`SubscriptionClient`)
- one websocket connection per relay (:class:`RelayConnection`)
- fan-out subscriptions with per-subscription id dedup and EOSE
  aggregation (:class:`RelaySubscription`)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import aiohttp

from pynostrstore._redact import summarize_frame
from pynostrstore.config import NostrConfig, SubscriptionOptions
from pynostrstore.exceptions import RelayProtocolError, RelayTransportError
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.filter import NostrFilter

_logger = logging.getLogger(__name__)

_KNOWN_LABELS = frozenset({"EVENT", "EOSE", "CLOSED", "NOTICE", "OK", "AUTH", "COUNT"})
SUBSCRIPTION_EVENTS = frozenset({"event", "eose", "closed"})


class Subscription(Protocol):
    """What the store needs from a live subscription."""

    def on(self, name: str, callback: Callable[..., None]) -> None: ...

    def stop(self) -> None: ...


class SubscriptionClient(Protocol):
    """Structural client interface used by stores and reposts.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`pynostrstore.client.NostrClient`)
    concrete.
    """

    def subscribe(
        self,
        filters: Sequence[NostrFilter],
        options: SubscriptionOptions | None = None,
    ) -> Subscription: ...

    async def fetch_event(
        self,
        filter: NostrFilter,
        options: SubscriptionOptions | None = None,
    ) -> NostrEvent | None: ...


def parse_relay_message(raw: str) -> list[Any]:
    """Decode one relay frame into a list whose first item is the label."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RelayProtocolError(f"Relay frame is not JSON: {raw[:64]}", frame=raw) from exc
    if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
        raise RelayProtocolError(f"Relay frame is not a labelled array: {raw[:64]}", frame=raw)
    if frame[0] not in _KNOWN_LABELS:
        raise RelayProtocolError(f"Unknown relay frame label {frame[0]!r}", frame=raw)
    return frame


def encode_message(message: Sequence[Any]) -> str:
    return json.dumps(list(message), separators=(",", ":"), ensure_ascii=False)


class RelayConnection:
    """A lazily connected websocket to one relay."""

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        config: NostrConfig,
        on_frame: Callable[[RelayConnection, list[Any]], None],
    ) -> None:
        self.url = url
        self._http = http_session
        self._config = config
        self._on_frame = on_frame
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._connect_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        async with self._connect_lock:
            if self.is_connected:
                return
            _logger.debug("Connecting to relay %s", self.url)
            try:
                ws = await asyncio.wait_for(
                    self._http.ws_connect(self.url, heartbeat=self._config.heartbeat),
                    self._config.connect_timeout,
                )
            except TimeoutError as exc:
                raise RelayTransportError(f"Timed out connecting to {self.url}", url=self.url) from exc
            except aiohttp.ClientError as exc:
                raise RelayTransportError(f"Connection to {self.url} failed: {exc}", url=self.url) from exc
            self._ws = ws
            self._reader = asyncio.get_running_loop().create_task(self._read_loop(ws))

    async def send(self, message: Sequence[Any]) -> None:
        await self.connect()
        ws = self._ws
        if ws is None:
            raise RelayTransportError(f"Relay {self.url} is not connected", url=self.url)
        text = encode_message(message)
        _logger.debug("-> %s %s", self.url, summarize_frame(message))
        try:
            await ws.send_str(text)
        except (aiohttp.ClientError, ConnectionResetError) as exc:
            raise RelayTransportError(f"Send to {self.url} failed: {exc}", url=self.url) from exc

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        reader = self._reader
        self._reader = None
        if ws is not None and not ws.closed:
            await ws.close()
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()

    def feed(self, raw: str) -> None:
        """Decode and dispatch one inbound text frame."""
        try:
            frame = parse_relay_message(raw)
        except RelayProtocolError:
            _logger.debug("Dropping malformed frame from %s", self.url, exc_info=True)
            return
        _logger.debug("<- %s %s", self.url, summarize_frame(frame))
        self._on_frame(self, frame)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.feed(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    _logger.debug("Relay %s websocket error: %s", self.url, ws.exception())
                    break
        finally:
            if self._ws is ws:
                self._ws = None
            _logger.debug("Relay %s read loop ended", self.url)


class RelaySubscription:
    """One ``REQ`` sent to every relay of the pool.

    Events are deduplicated by id across relays. ``eose`` fires once, when
    every relay has answered ``EOSE`` / ``CLOSED`` (or failed), or when the
    EOSE timeout elapses, whichever comes first.
    """

    def __init__(
        self,
        sub_id: str,
        filters: Sequence[NostrFilter],
        *,
        relay_urls: Sequence[str],
        options: SubscriptionOptions,
        eose_timeout: float,
        on_stop: Callable[[RelaySubscription], None],
    ) -> None:
        self.sub_id = sub_id
        self.filters = list(filters)
        self.options = options
        self.relay_urls = frozenset(relay_urls)
        self._eose_timeout = eose_timeout
        self._on_stop = on_stop
        self._callbacks: dict[str, list[Callable[..., None]]] = {name: [] for name in SUBSCRIPTION_EVENTS}
        self._seen_ids: set[str] = set()
        self._eosed: set[str] = set()
        self._eose_fired = False
        self._eose_handle: asyncio.TimerHandle | None = None
        self.stopped = False

    @property
    def eose_received(self) -> bool:
        return self._eose_fired

    def request_frame(self) -> list[Any]:
        return ["REQ", self.sub_id, *(f.to_wire() for f in self.filters)]

    def on(self, name: str, callback: Callable[..., None]) -> None:
        if name not in self._callbacks:
            raise ValueError(f"Unknown subscription event {name!r}")
        self._callbacks[name].append(callback)

    def arm_eose_timer(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._eose_timeout > 0 and self._eose_handle is None:
            self._eose_handle = loop.call_later(self._eose_timeout, self._fire_eose)

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        if self._eose_handle is not None:
            self._eose_handle.cancel()
            self._eose_handle = None
        self._on_stop(self)

    # ------------------------------------------------------------------
    # Relay-side notifications
    # ------------------------------------------------------------------

    def handle_event(self, relay_url: str, event: NostrEvent) -> None:
        if self.stopped or (event.id and event.id in self._seen_ids):
            return
        if event.id:
            self._seen_ids.add(event.id)
        self._emit("event", event)

    def handle_eose(self, relay_url: str) -> None:
        self._eosed.add(relay_url)
        if self.relay_urls <= self._eosed:
            self._fire_eose()

    def handle_closed(self, relay_url: str, reason: str) -> None:
        _logger.debug("Relay %s closed subscription %s: %s", relay_url, self.sub_id, reason)
        self._emit("closed", relay_url, reason)
        self.handle_eose(relay_url)

    def _fire_eose(self) -> None:
        if self._eose_fired or self.stopped:
            return
        self._eose_fired = True
        if self._eose_handle is not None:
            self._eose_handle.cancel()
            self._eose_handle = None
        self._emit("eose")
        if self.options.close_on_eose:
            self.stop()

    def _emit(self, name: str, *args: Any) -> None:
        for callback in list(self._callbacks[name]):
            try:
                callback(*args)
            except Exception:
                _logger.debug("Subscription %s %s callback failed", self.sub_id, name, exc_info=True)
