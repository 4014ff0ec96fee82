"""State layer.

Owns the ordered event collection and the subscription lifecycle of a
store. Only the ingestion layer and the controllers defined here mutate
:class:`StoreState`.
"""
