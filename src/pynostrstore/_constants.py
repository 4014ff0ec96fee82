"""Internal constants shared across the library."""

from __future__ import annotations

import enum

DEFAULT_RELAYS: tuple[str, ...] = ("wss://relay.damus.io", "wss://nos.lol")
USER_AGENT = "pynostrstore"


class Kind(enum.IntEnum):
    """Event kinds the library treats specially.

    Event kinds are an open integer space; this enum only names the ones
    referenced in code. ``NostrEvent.kind`` stays a plain ``int``.
    """

    METADATA = 0
    TEXT_NOTE = 1
    CONTACTS = 3
    REPOST = 6
    GENERIC_REPOST = 16
    HIGHLIGHT = 9802
    ARTICLE = 30023


REPOST_KINDS: frozenset[int] = frozenset({Kind.REPOST, Kind.GENERIC_REPOST})

# ------------------------------------------------------------------
# NIP-01 kind ranges
# ------------------------------------------------------------------

REPLACEABLE_RANGE = range(10000, 20000)
PARAM_REPLACEABLE_RANGE = range(30000, 40000)


def is_repost_kind(kind: int | None) -> bool:
    """Return ``True`` for kind 6 (note repost) and kind 16 (generic repost)."""
    return kind in REPOST_KINDS
