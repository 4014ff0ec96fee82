"""NIP-01 event model."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import Field, field_validator

from pynostrstore._constants import PARAM_REPLACEABLE_RANGE, REPLACEABLE_RANGE, Kind
from pynostrstore.models._base import NostrBaseModel


class NostrEvent(NostrBaseModel):
    """An immutable Nostr event as delivered by a relay.

    Validation of ids and signatures is not performed here; relays and
    callers are trusted to hand over well-formed events.
    """

    id: str = ""
    pubkey: str = ""
    created_at: int = 0
    kind: int = int(Kind.TEXT_NOTE)
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""
    sig: str = ""

    @field_validator("tags", mode="before")
    @classmethod
    def _stringify_tags(cls, value: Any) -> Any:
        # Some relays emit numeric tag values; NIP-01 says strings.
        if not isinstance(value, list):
            return value
        return [[str(item) for item in tag] for tag in value if isinstance(tag, list)]

    @classmethod
    def from_event(cls, event: NostrEvent) -> NostrEvent:
        """Typed-conversion hook; subclasses reuse it to project an event."""
        if type(event) is cls:
            return event
        return cls.model_validate(event.model_dump())

    # ------------------------------------------------------------------
    # Kind classification
    # ------------------------------------------------------------------

    def is_replaceable(self) -> bool:
        return self.kind in (Kind.METADATA, Kind.CONTACTS) or self.kind in REPLACEABLE_RANGE

    def is_param_replaceable(self) -> bool:
        return self.kind in PARAM_REPLACEABLE_RANGE

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def tag_values(self, name: str) -> list[str]:
        """All values of tags named *name*, in tag order."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def tag_value(self, name: str) -> str | None:
        values = self.tag_values(name)
        return values[0] if values else None

    def d_tag(self) -> str:
        return self.tag_value("d") or ""

    def tag_address(self) -> str:
        """``kind:pubkey:d`` coordinate of a parameterized-replaceable event."""
        return f"{self.kind}:{self.pubkey}:{self.d_tag()}"

    def tag_id(self) -> str:
        """Dedup key.

        Parameterized-replaceable events are identified by their address so
        that every version of the same article collapses onto one entry;
        everything else uses the event id.
        """
        if self.is_param_replaceable():
            return self.tag_address()
        return self.id

    # ------------------------------------------------------------------
    # NIP-01 hashing
    # ------------------------------------------------------------------

    def serialize(self) -> str:
        """Canonical serialization used to derive the event id."""
        return json.dumps(
            [0, self.pubkey, self.created_at, self.kind, self.tags, self.content],
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def compute_id(self) -> str:
        return hashlib.sha256(self.serialize().encode("utf-8")).hexdigest()
