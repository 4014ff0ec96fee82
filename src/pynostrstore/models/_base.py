"""Base model for Nostr wire objects.

Every wire model inherits from :class:`NostrBaseModel` which provides:

* ``frozen=True`` so events are immutable once received.
* ``extra="allow"`` so relay-specific fields survive a round trip.
* :meth:`NostrBaseModel.to_wire` producing the JSON-ready dict that is
  sent to relays.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class NostrBaseModel(BaseModel):
    """Base for Nostr wire models."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the JSON shape used on the wire (aliases, no ``None``)."""
        return self.model_dump(by_alias=True, exclude_none=True)
