"""Wire models for Nostr events and filters."""

from pynostrstore.models._base import NostrBaseModel
from pynostrstore.models.event import NostrEvent
from pynostrstore.models.factory import IDENTITY, EventFactory, IdentityFactory
from pynostrstore.models.filter import NostrFilter, filter_for_id
from pynostrstore.models.highlight import Highlight
from pynostrstore.models.repost import Repost

__all__ = [
    "EventFactory",
    "Highlight",
    "IDENTITY",
    "IdentityFactory",
    "NostrBaseModel",
    "NostrEvent",
    "NostrFilter",
    "Repost",
    "filter_for_id",
]
