"""Typed-conversion capability.

A store is parameterised over an :class:`EventFactory`: anything with a
``from_event(event)`` operation, typically a :class:`NostrEvent` subclass
such as :class:`pynostrstore.models.Highlight`.
"""

from __future__ import annotations

from typing import Protocol, TypeVar

from pynostrstore.models.event import NostrEvent

T_co = TypeVar("T_co", bound=NostrEvent, covariant=True)


class EventFactory(Protocol[T_co]):
    def from_event(self, event: NostrEvent) -> T_co: ...


class IdentityFactory:
    """Factory used when no typed projection is configured."""

    @staticmethod
    def from_event(event: NostrEvent) -> NostrEvent:
        return event


IDENTITY: EventFactory[NostrEvent] = IdentityFactory()
