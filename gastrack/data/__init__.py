"""
Fee data models, payload parsing and the bounded observation store.

Holds the immutable observation/price/state models, JSON-RPC payload parsers
and the per-network rolling time series.
"""
