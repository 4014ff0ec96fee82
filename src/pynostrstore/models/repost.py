"""Kind 6 / kind 16 repost view (NIP-18)."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pynostrstore._constants import is_repost_kind
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.factory import IDENTITY, EventFactory
from pynostrstore.models.filter import filter_for_id

if TYPE_CHECKING:
    from pynostrstore._relay import SubscriptionClient

_logger = logging.getLogger(__name__)


class Repost(NostrEvent):
    """A repost referencing one or more events by ``e`` id or ``a`` address."""

    @property
    def is_repost(self) -> bool:
        return is_repost_kind(self.kind)

    def reposted_event_ids(self) -> list[str]:
        """Referenced targets in tag order, without duplicates."""
        seen: dict[str, None] = {}
        for tag in self.tags:
            if len(tag) > 1 and tag[0] in ("e", "a") and tag[1]:
                seen.setdefault(tag[1], None)
        return list(seen)

    def embedded_event(self) -> NostrEvent | None:
        """The reposted event carried as JSON in ``content``, if any."""
        if not self.content.strip():
            return None
        try:
            data: Any = json.loads(self.content)
            if not isinstance(data, dict):
                return None
            return NostrEvent.model_validate(data)
        except (json.JSONDecodeError, ValidationError):
            _logger.debug("Repost %s content is not an embedded event", self.id, exc_info=True)
            return None

    async def reposted_events(
        self,
        client: SubscriptionClient,
        factory: EventFactory[Any] = IDENTITY,
        *,
        ids: list[str] | None = None,
    ) -> list[Any]:
        """Resolve the reposted events.

        The embedded copy is used when it matches a wanted target; the rest
        are fetched one by one through *client*. Targets the relays do not
        return are simply missing from the result.
        """
        wanted = ids if ids is not None else self.reposted_event_ids()
        items: list[Any] = []
        remaining = list(wanted)

        embedded = self.embedded_event()
        if embedded is not None:
            for alias in (embedded.tag_id(), embedded.id):
                if alias in remaining:
                    items.append(factory.from_event(embedded))
                    remaining.remove(alias)
                    break

        for target in remaining:
            event = await client.fetch_event(filter_for_id(target))
            if event is not None:
                items.append(factory.from_event(event))
        return items
