"""Custom exception hierarchy for pynostrstore."""

from __future__ import annotations


class NostrError(Exception):
    """Base exception for all pynostrstore errors."""


class StoreConfigError(NostrError):
    """Invalid or missing store configuration.

    Raised synchronously when a subscription is started without a filter
    set. Callers of the public API always supply filters, so seeing this
    means the store was driven incorrectly.
    """


class RelayTransportError(NostrError):
    """Websocket-level failure (connect, send, unexpected close)."""

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class RelayProtocolError(NostrError):
    """A relay sent a frame that is not a valid NIP-01 message."""

    def __init__(self, message: str, *, url: str = "", frame: str = "") -> None:
        self.url = url
        self.frame = frame
        super().__init__(message)
