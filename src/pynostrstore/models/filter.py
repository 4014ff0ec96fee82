"""NIP-01 subscription filters."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from pynostrstore.models._base import NostrBaseModel
from pynostrstore.models.event import NostrEvent


class NostrFilter(NostrBaseModel):
    """A single ``REQ`` filter.

    Single-letter tag filters are kept in :attr:`tags` keyed by the bare
    letter (``{"e": [...]}``) and rendered as ``"#e"`` on the wire.
    """

    ids: list[str] | None = None
    authors: list[str] | None = None
    kinds: list[int] | None = None
    tags: dict[str, list[str]] = Field(default_factory=dict)
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    search: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _collect_tag_filters(cls, values: Any) -> Any:
        """Move ``"#x"`` keys of a wire dict into :attr:`tags`."""
        if not isinstance(values, dict):
            return values
        working = dict(values)
        tags: dict[str, list[str]] = dict(working.pop("tags", None) or {})
        for key in [k for k in working if isinstance(k, str) and k.startswith("#")]:
            tags[key[1:]] = [str(v) for v in working.pop(key) or []]
        working["tags"] = tags
        return working

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> NostrFilter:
        return cls.model_validate(data)

    def to_wire(self) -> dict[str, Any]:
        wire = self.model_dump(exclude={"tags"}, exclude_none=True)
        for name, values in self.tags.items():
            wire[f"#{name}"] = list(values)
        return wire

    def matches(self, event: NostrEvent) -> bool:
        """Local evaluation of the filter against *event*.

        ``search`` is a relay-side extension and is ignored here.
        """
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, wanted in self.tags.items():
            if not set(event.tag_values(name)) & set(wanted):
                return False
        return True


def filter_for_id(target: str) -> NostrFilter:
    """Filter fetching one event by id or by ``kind:pubkey:d`` address."""
    if ":" in target:
        kind, pubkey, d_tag = (target.split(":", 2) + ["", ""])[:3]
        return NostrFilter(kinds=[int(kind)], authors=[pubkey], tags={"d": [d_tag]})
    return NostrFilter(ids=[target])
