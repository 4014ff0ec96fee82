from __future__ import annotations

import asyncio
import json

import pytest
from conftest import FakeClient, make_event, make_repost

from pynostrstore._constants import Kind
from pynostrstore.config import StoreOptions
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.filter import NostrFilter
from pynostrstore.store import EventStore

_REPOSTS = StoreOptions(reposts_filters=(NostrFilter(kinds=[6, 16]),))
_ARTICLE_ADDRESS = "30023:pk1:x"


def _store(client: FakeClient, **kwargs: object) -> EventStore:
    return EventStore(client, NostrFilter(kinds=[1]), options=_REPOSTS, **kwargs)  # type: ignore[arg-type]


def _article(event_id: str = "art1", created_at: int = 100) -> NostrEvent:
    return make_event(event_id, created_at, kind=Kind.ARTICLE, tags=[["d", "x"]])


def test_repost_attaches_to_known_target(client: FakeClient) -> None:
    store = _store(client)
    client.last.emit_event(make_event("t", 100))
    client.last.emit_event(make_repost("r1", 150, "t"))
    client.last.emit_event(make_repost("r2", 160, "t"))

    entries = store.get()
    assert [e.id for e in entries] == ["t"]
    assert [r.id for r in entries[0].reposted_by_events or []] == ["r1", "r2"]
    assert client.fetches == []


def test_same_repost_twice_is_attached_once(client: FakeClient) -> None:
    store = _store(client)
    client.last.emit_event(make_event("t", 100))
    client.last.emit_event(make_repost("r1", 150, "t"))
    client.last.emit_event(make_repost("r1", 150, "t"))

    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r1"]


def test_target_without_reposts_has_no_annotation(client: FakeClient) -> None:
    store = _store(client)
    client.last.emit_event(make_event("t", 100))

    assert store.get()[0].reposted_by_events is None


@pytest.mark.asyncio
async def test_missing_target_is_fetched_and_back_linked(client: FakeClient) -> None:
    client.remote.append(make_event("t", 100))
    store = _store(client)
    client.last.emit_event(make_repost("r", 150, "t"))

    assert len(store) == 0
    await store.wait_for_reposts()

    entries = store.get()
    assert [e.id for e in entries] == ["t"]
    assert [r.id for r in entries[0].reposted_by_events or []] == ["r"]
    assert client.fetches[0].ids == ["t"]


@pytest.mark.asyncio
async def test_target_arriving_on_stream_before_fetch_resolves(client: FakeClient) -> None:
    client.gate = asyncio.Event()
    client.remote.append(make_event("t", 100))
    store = _store(client)
    client.last.emit_event(make_repost("r", 150, "t"))
    await asyncio.sleep(0)

    client.last.emit_event(make_event("t", 100))
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]

    client.gate.set()
    await store.wait_for_reposts()
    assert [e.id for e in store.get()] == ["t"]
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]


@pytest.mark.asyncio
async def test_concurrent_reposts_of_missing_target_share_one_fetch(client: FakeClient) -> None:
    client.gate = asyncio.Event()
    client.remote.append(make_event("t", 100))
    store = _store(client)
    client.last.emit_event(make_repost("r1", 150, "t"))
    client.last.emit_event(make_repost("r2", 160, "t"))
    client.gate.set()
    await store.wait_for_reposts()

    assert len(client.fetches) == 1
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r1", "r2"]


@pytest.mark.asyncio
async def test_embedded_repost_content_avoids_fetch(client: FakeClient) -> None:
    target = make_event("t", 100, content="hello")
    store = _store(client)
    client.last.emit_event(make_repost("r", 150, "t", content=json.dumps(target.model_dump())))
    await store.wait_for_reposts()

    assert client.fetches == []
    assert store.get()[0].content == "hello"
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]


@pytest.mark.asyncio
async def test_repost_with_several_targets(client: FakeClient) -> None:
    client.remote.append(make_event("b", 50))
    store = _store(client)
    client.last.emit_event(make_event("a", 100))
    client.last.emit_event(make_repost("r", 150, "a", "b"))
    await store.wait_for_reposts()

    by_id = {e.id: e for e in store.get()}
    assert [e.id for e in store.get()] == ["a", "b"]
    assert [r.id for r in by_id["a"].reposted_by_events or []] == ["r"]
    assert [r.id for r in by_id["b"].reposted_by_events or []] == ["r"]


@pytest.mark.asyncio
async def test_fetch_failure_is_silent_but_observable(client: FakeClient) -> None:
    client.fetch_error = ConnectionError("relay down")
    failures: list[tuple[str, BaseException]] = []
    store = _store(client, on_fetch_error=lambda target, exc: failures.append((target, exc)))
    client.last.emit_event(make_repost("r", 150, "t"))
    await store.wait_for_reposts()

    assert store.get() == []
    assert [target for target, _ in failures] == ["t"]
    assert isinstance(failures[0][1], ConnectionError)


@pytest.mark.asyncio
async def test_fetch_result_for_cleared_store_is_dropped(client: FakeClient) -> None:
    client.gate = asyncio.Event()
    client.remote.append(make_event("t", 100))
    store = _store(client)
    client.last.emit_event(make_repost("r", 150, "t"))
    await asyncio.sleep(0)

    store.empty()
    client.gate.set()
    await store.wait_for_reposts()

    assert store.get() == []
    assert store.seen_keys == frozenset()


@pytest.mark.asyncio
async def test_fetched_target_is_projected_once_through_factory(client: FakeClient) -> None:
    calls: list[str] = []

    class CountingFactory:
        @staticmethod
        def from_event(event):  # type: ignore[no-untyped-def]
            calls.append(event.id)
            return event

    client.remote.append(make_event("t", 100))
    store = _store(client, factory=CountingFactory())
    client.last.emit_event(make_repost("r", 150, "t"))
    await store.wait_for_reposts()

    assert calls == ["t"]


# ------------------------------------------------------------------
# Addressable targets (``e`` id vs ``a`` address)
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_repost_by_id_attaches_to_stored_addressable_event(client: FakeClient) -> None:
    store = _store(client)
    client.last.emit_event(_article())
    client.last.emit_event(make_repost("r", 150, "art1", kind=16))
    await store.wait_for_reposts()

    stored = store.get_event(_ARTICLE_ADDRESS)
    assert stored is not None
    assert [r.id for r in stored.reposted_by_events or []] == ["r"]
    assert client.fetches == []


def test_repost_by_address_attaches_to_known_target(client: FakeClient) -> None:
    store = _store(client)
    client.last.emit_event(_article())
    client.last.emit_event(make_event("r", 150, kind=16, tags=[["a", _ARTICLE_ADDRESS]]))

    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]
    assert client.fetches == []


@pytest.mark.asyncio
async def test_missing_address_target_is_fetched_by_address(client: FakeClient) -> None:
    client.remote.append(_article())
    store = _store(client)
    client.last.emit_event(make_event("r", 150, kind=16, tags=[["a", _ARTICLE_ADDRESS]]))
    await store.wait_for_reposts()

    fetch = client.fetches[0]
    assert (fetch.kinds, fetch.authors, fetch.tags) == ([30023], ["pk1"], {"d": ["x"]})
    assert [e.key for e in store.get()] == [_ARTICLE_ADDRESS]
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]


@pytest.mark.asyncio
async def test_repost_with_id_and_address_of_missing_target(client: FakeClient) -> None:
    client.remote.append(_article())
    store = _store(client)
    client.last.emit_event(make_event("r", 150, kind=16, tags=[["e", "art1"], ["a", _ARTICLE_ADDRESS]]))
    await store.wait_for_reposts()

    assert len(store) == 1
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]
    assert len(client.fetches) == 1


@pytest.mark.asyncio
async def test_fetched_copy_of_stored_address_drains_parked_repost(client: FakeClient) -> None:
    client.remote.append(_article("art2", 120))
    store = _store(client)
    client.last.emit_event(_article("art1", 100))
    client.last.emit_event(make_repost("r", 150, "art2", kind=16))
    await store.wait_for_reposts()

    assert [e.id for e in store.get()] == ["art1"]
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]
    assert [f.ids for f in client.fetches] == [["art2"]]


def test_repost_without_running_loop_waits_for_stream(client: FakeClient) -> None:
    store = _store(client)
    client.last.emit_event(make_repost("r", 150, "t"))

    assert client.fetches == []
    assert len(store) == 0

    client.last.emit_event(make_event("t", 100))
    assert [r.id for r in store.get()[0].reposted_by_events or []] == ["r"]
