"""Kind 9802 highlights (NIP-84)."""

from __future__ import annotations

from pynostrstore.models.event import NostrEvent


class Highlight(NostrEvent):
    """Typed view of a highlight event.

    Use the class itself as the typed-conversion factory::

        store = client.store_subscribe(NostrFilter(kinds=[9802]), factory=Highlight)
    """

    @property
    def text(self) -> str:
        return self.content

    @property
    def context(self) -> str | None:
        return self.tag_value("context")

    @property
    def article(self) -> str | None:
        """Address (``a``) or id (``e``) of the highlighted article, else the source URL."""
        return self.tag_value("a") or self.tag_value("e") or self.tag_value("r")
