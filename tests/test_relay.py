from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from pynostrstore._relay import RelayConnection, RelaySubscription, parse_relay_message
from pynostrstore.client import NostrClient
from pynostrstore.config import NostrConfig, SubscriptionOptions
from pynostrstore.exceptions import NostrError, RelayProtocolError
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.filter import NostrFilter

_RELAYS = ("wss://a.example", "wss://b.example")


def _subscription(
    *,
    relays: Sequence[str] = _RELAYS,
    close_on_eose: bool = False,
    eose_timeout: float = 0,
) -> tuple[RelaySubscription, list[RelaySubscription]]:
    stopped: list[RelaySubscription] = []
    sub = RelaySubscription(
        "sub1",
        [NostrFilter(kinds=[1], tags={"p": ["me"]})],
        relay_urls=relays,
        options=SubscriptionOptions(close_on_eose=close_on_eose),
        eose_timeout=eose_timeout,
        on_stop=stopped.append,
    )
    return sub, stopped


class _Relay:
    def __init__(self, url: str) -> None:
        self.url = url


# ------------------------------------------------------------------
# Frame parsing
# ------------------------------------------------------------------


def test_parse_relay_message() -> None:
    assert parse_relay_message('["EOSE","sub1"]') == ["EOSE", "sub1"]


@pytest.mark.parametrize("raw", ["not json", "{}", "[]", "[1]", '["PING"]'])
def test_parse_relay_message_rejects_bad_frames(raw: str) -> None:
    with pytest.raises(RelayProtocolError):
        parse_relay_message(raw)


def test_connection_feed_drops_malformed_frames() -> None:
    frames: list[list] = []
    relay = RelayConnection.__new__(RelayConnection)
    relay.url = "wss://a.example"
    relay._on_frame = lambda _relay, frame: frames.append(frame)  # type: ignore[attr-defined]

    relay.feed("garbage")
    relay.feed('["NOTICE","hello"]')

    assert frames == [["NOTICE", "hello"]]


# ------------------------------------------------------------------
# RelaySubscription
# ------------------------------------------------------------------


def test_request_frame() -> None:
    sub, _ = _subscription()
    assert sub.request_frame() == ["REQ", "sub1", {"kinds": [1], "#p": ["me"]}]


def test_events_are_deduplicated_across_relays() -> None:
    sub, _ = _subscription()
    received: list[str] = []
    sub.on("event", lambda e: received.append(e.id))

    sub.handle_event("wss://a.example", NostrEvent(id="x"))
    sub.handle_event("wss://b.example", NostrEvent(id="x"))
    sub.handle_event("wss://b.example", NostrEvent(id="y"))

    assert received == ["x", "y"]


def test_eose_waits_for_every_relay() -> None:
    sub, _ = _subscription()
    eoses: list[int] = []
    sub.on("eose", lambda: eoses.append(1))

    sub.handle_eose("wss://a.example")
    assert eoses == []
    sub.handle_closed("wss://b.example", "rate-limited")
    sub.handle_eose("wss://a.example")
    assert eoses == [1]
    assert sub.eose_received


def test_close_on_eose_stops_subscription() -> None:
    sub, stopped = _subscription(relays=("wss://a.example",), close_on_eose=True)
    sub.handle_eose("wss://a.example")
    sub.handle_event("wss://a.example", NostrEvent(id="late"))

    assert stopped == [sub]
    assert sub.stopped


def test_stop_is_idempotent() -> None:
    sub, stopped = _subscription()
    sub.stop()
    sub.stop()
    assert stopped == [sub]


def test_failing_callback_does_not_break_delivery() -> None:
    sub, _ = _subscription()
    received: list[str] = []

    def boom(_event: NostrEvent) -> None:
        raise RuntimeError("listener bug")

    sub.on("event", boom)
    sub.on("event", lambda e: received.append(e.id))
    sub.handle_event("wss://a.example", NostrEvent(id="x"))

    assert received == ["x"]


def test_unknown_subscription_event_name() -> None:
    sub, _ = _subscription()
    with pytest.raises(ValueError):
        sub.on("closing", lambda: None)


@pytest.mark.asyncio
async def test_eose_timeout_fires_when_relays_stay_silent() -> None:
    sub, _ = _subscription(eose_timeout=0.02)
    eoses: list[int] = []
    sub.on("eose", lambda: eoses.append(1))
    sub.arm_eose_timer(asyncio.get_running_loop())

    await asyncio.sleep(0.05)
    sub.handle_eose("wss://a.example")
    sub.handle_eose("wss://b.example")
    assert eoses == [1]


# ------------------------------------------------------------------
# NostrClient frame dispatch
# ------------------------------------------------------------------


def test_client_requires_context_manager() -> None:
    client = NostrClient(NostrConfig(relay_urls=_RELAYS))
    with pytest.raises(NostrError):
        client.subscribe(NostrFilter(kinds=[1]))


def test_client_dispatches_frames_to_subscription() -> None:
    client = NostrClient(NostrConfig(relay_urls=_RELAYS))
    sub, _ = _subscription()
    client._subscriptions[sub.sub_id] = sub  # noqa: SLF001
    received: list[str] = []
    eoses: list[int] = []
    sub.on("event", lambda e: received.append(e.id))
    sub.on("eose", lambda: eoses.append(1))

    relay_a, relay_b = _Relay("wss://a.example"), _Relay("wss://b.example")
    client._on_frame(relay_a, ["EVENT", "sub1", {"id": "x", "kind": 1, "created_at": 3}])  # type: ignore[arg-type]  # noqa: SLF001
    client._on_frame(relay_a, ["EVENT", "sub1", {"id": "bad", "tags": "nope"}])  # type: ignore[arg-type]  # noqa: SLF001
    client._on_frame(relay_a, ["EVENT", "other", {"id": "y"}])  # type: ignore[arg-type]  # noqa: SLF001
    client._on_frame(relay_a, ["EOSE", "sub1"])  # type: ignore[arg-type]  # noqa: SLF001
    client._on_frame(relay_b, ["NOTICE", "slow down"])  # type: ignore[arg-type]  # noqa: SLF001
    client._on_frame(relay_b, ["EOSE", "sub1"])  # type: ignore[arg-type]  # noqa: SLF001

    assert received == ["x"]
    assert eoses == [1]


@pytest.mark.asyncio
async def test_fetch_event_without_relays_returns_none() -> None:
    async with NostrClient(NostrConfig(relay_urls=())) as client:
        assert await client.fetch_event(NostrFilter(ids=["abc"])) is None
        assert client.active_subscriptions == []


class _RecordingRelay:
    is_connected = True

    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: list[list] = []
        self.closed = False

    async def send(self, message: Sequence) -> None:
        await asyncio.sleep(0)
        self.sent.append(list(message))

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_client_exit_sends_close_for_open_subscriptions() -> None:
    relay = _RecordingRelay("wss://a.example")
    async with NostrClient(NostrConfig(relay_urls=(relay.url,))) as client:
        client._relays[relay.url] = relay  # type: ignore[assignment]  # noqa: SLF001
        sub = RelaySubscription(
            "sub1",
            [NostrFilter(kinds=[1])],
            relay_urls=(relay.url,),
            options=SubscriptionOptions(),
            eose_timeout=0,
            on_stop=client._release,  # noqa: SLF001
        )
        client._subscriptions[sub.sub_id] = sub  # noqa: SLF001

    assert relay.sent == [["CLOSE", "sub1"]]
    assert relay.closed
