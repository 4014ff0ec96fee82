"""Client and store configuration for pynostrstore."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pynostrstore._constants import DEFAULT_RELAYS
from pynostrstore.models.filter import NostrFilter


def _env_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


def _split_relays(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclasses.dataclass(frozen=True)
class NostrConfig:
    """Relay pool configuration.

    Parameters
    ----------
    relay_urls : tuple[str, ...]
        Websocket URLs of the relays to query.
    connect_timeout : float
        Seconds allowed for the websocket handshake with one relay.
    fetch_timeout : float
        Seconds :meth:`NostrClient.fetch_event` waits before giving up
        and returning whatever arrived.
    eose_timeout : float
        Seconds after which a subscription reports end-of-stored-events
        even if some relays never sent ``EOSE``.
    heartbeat : float
        Websocket ping interval in seconds.
    """

    relay_urls: tuple[str, ...] = DEFAULT_RELAYS
    connect_timeout: float = 10.0
    fetch_timeout: float = 8.0
    eose_timeout: float = 5.0
    heartbeat: float = 30.0

    @classmethod
    def from_env(cls, **overrides: Any) -> NostrConfig:
        """Create configuration from environment variables.

        Reads ``NOSTR_RELAYS`` (comma separated) and the optional
        ``NOSTR_CONNECT_TIMEOUT``, ``NOSTR_FETCH_TIMEOUT``,
        ``NOSTR_EOSE_TIMEOUT`` and ``NOSTR_HEARTBEAT`` variables.
        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        relays = env.get("NOSTR_RELAYS")
        if relays is not None and "relay_urls" not in overrides:
            parsed = _split_relays(relays)
            if parsed:
                config_kwargs["relay_urls"] = parsed

        _ENV_FLOAT_MAP = {
            "NOSTR_CONNECT_TIMEOUT": "connect_timeout",
            "NOSTR_FETCH_TIMEOUT": "fetch_timeout",
            "NOSTR_EOSE_TIMEOUT": "eose_timeout",
            "NOSTR_HEARTBEAT": "heartbeat",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            if field_name in overrides:
                continue
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_float(val, getattr(cls, field_name))

        relay_override = overrides.pop("relay_urls", None)
        if isinstance(relay_override, str):
            config_kwargs["relay_urls"] = _split_relays(relay_override)
        elif relay_override is not None:
            config_kwargs["relay_urls"] = tuple(relay_override)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


@dataclasses.dataclass(frozen=True)
class SubscriptionOptions:
    """Options forwarded with a subscription request.

    ``eose_timeout`` of ``None`` falls back to :attr:`NostrConfig.eose_timeout`.
    """

    close_on_eose: bool = False
    sub_id: str | None = None
    eose_timeout: float | None = None


@dataclasses.dataclass(frozen=True)
class StoreOptions:
    """Options recognised by :meth:`NostrClient.store_subscribe`.

    Parameters
    ----------
    auto_start : bool
        Start the subscription when the store is created instead of on
        the first :meth:`EventStore.ref`.
    reposts_filters : tuple[NostrFilter, ...] or None
        Extra filters appended to the live request. Their presence also
        turns on repost handling; ``None`` stores reposts like any event.
    unref_unsubscribe_timeout : float or None
        Milliseconds to wait after the last ``unref`` before the
        subscription is stopped. ``None`` (or ``0``) stops immediately.
    subscription : SubscriptionOptions
        Forwarded to the transport with every request.
    """

    auto_start: bool = True
    reposts_filters: tuple[NostrFilter, ...] | None = None
    unref_unsubscribe_timeout: float | None = None
    subscription: SubscriptionOptions = dataclasses.field(default_factory=SubscriptionOptions)

    @property
    def handles_reposts(self) -> bool:
        return self.reposts_filters is not None

    @property
    def grace_seconds(self) -> float | None:
        """Grace period in seconds, or ``None`` for immediate unsubscription."""
        if not self.unref_unsubscribe_timeout:
            return None
        return self.unref_unsubscribe_timeout / 1000.0
