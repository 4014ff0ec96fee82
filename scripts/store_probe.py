#!/usr/bin/env python3
"""Live store probe.

Opens an :class:`EventStore` against the configured relays, holds one ref
for the requested duration and prints the ordered collection on EOSE and
on exit. Useful to eyeball ordering, dedup and repost back-links against
real relays.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pynostrstore import NostrClient, NostrConfig, NostrFilter, StoreOptions, StoredEvent  # noqa: E402

_LOG = logging.getLogger("store_probe")


@dataclass
class ProbeStats:
    started_at: float
    publishes: int = 0
    eose_at: float | None = None


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Subscribe an event store and print its contents.")
    parser.add_argument("--kinds", type=int, nargs="+", default=[1], help="Event kinds to subscribe to.")
    parser.add_argument("--author", action="append", default=None, help="Restrict to this pubkey (repeatable).")
    parser.add_argument("--limit", type=int, default=20, help="REQ limit per filter.")
    parser.add_argument("--reposts", action="store_true", help="Also subscribe to kind 6/16 and resolve reposts.")
    parser.add_argument("--duration", type=float, default=10.0, help="Seconds to keep the store referenced.")
    parser.add_argument("--grace-ms", type=float, default=None, help="Unsubscribe grace period in ms.")
    parser.add_argument("--relay", action="append", default=None, help="Relay URL (repeatable, overrides env).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _print_entries(entries: list[StoredEvent]) -> None:
    for entry in entries:
        reposts = len(entry.reposted_by_events or [])
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(entry.created_at))
        preview = entry.event.content.replace("\n", " ")[:60]
        print(f"[probe] {stamp} kind={entry.kind:<5} reposts={reposts:<2} {entry.key[:16]} {preview}")


async def _run(args: argparse.Namespace) -> int:
    overrides = {"relay_urls": tuple(args.relay)} if args.relay else {}
    config = NostrConfig.from_env(**overrides)
    authors = args.author or None
    filters = [NostrFilter(kinds=args.kinds, authors=authors, limit=args.limit)]
    reposts = (NostrFilter(kinds=[6, 16], authors=authors, limit=args.limit),) if args.reposts else None
    options = StoreOptions(auto_start=False, reposts_filters=reposts, unref_unsubscribe_timeout=args.grace_ms)

    stats = ProbeStats(started_at=time.time())
    async with NostrClient(config) as client:
        store = client.store_subscribe(filters, options)

        def on_publish(_entries: list[StoredEvent]) -> None:
            stats.publishes += 1

        def on_eose() -> None:
            stats.eose_at = time.time()
            print(f"[probe] EOSE after {stats.eose_at - stats.started_at:.2f}s, {len(store)} event(s)")
            _print_entries(store.get())

        unsubscribe = store.subscribe(on_publish)
        store.on_eose(on_eose)
        store.ref()
        try:
            await asyncio.sleep(args.duration)
        finally:
            store.unref()
            unsubscribe()
            await store.wait_for_reposts()
            store.close()

        print(f"[probe] Final snapshot ({len(store)} events, {stats.publishes} publishes)")
        _print_entries(store.get())
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        _LOG.info("Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
