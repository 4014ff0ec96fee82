"""pynostrstore - Reactive, ref-counted Nostr event stores over asyncio."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pynostrstore")
except PackageNotFoundError:
    __version__ = "0+local"
from pynostrstore._constants import Kind
from pynostrstore.client import NostrClient
from pynostrstore.config import NostrConfig, StoreOptions, SubscriptionOptions
from pynostrstore.exceptions import (
    NostrError,
    RelayProtocolError,
    RelayTransportError,
    StoreConfigError,
)
from pynostrstore.models import (
    EventFactory,
    Highlight,
    NostrEvent,
    NostrFilter,
    Repost,
    filter_for_id,
)
from pynostrstore.reactive import Writable
from pynostrstore.state.collection import StoredEvent
from pynostrstore.state.lifecycle import LifecycleState
from pynostrstore.store import EventStore

__all__ = [
    "__version__",
    "EventFactory",
    "EventStore",
    "Highlight",
    "Kind",
    "LifecycleState",
    "NostrClient",
    "NostrConfig",
    "NostrError",
    "NostrEvent",
    "NostrFilter",
    "RelayProtocolError",
    "RelayTransportError",
    "Repost",
    "StoreConfigError",
    "StoreOptions",
    "StoredEvent",
    "SubscriptionOptions",
    "Writable",
    "filter_for_id",
]
