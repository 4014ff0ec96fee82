"""Ingestion layer.

Adapters that take events delivered by a subscription (or fetched on
demand) and merge them into the store state.
"""

__all__: list[str] = []
