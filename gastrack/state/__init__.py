"""
Aggregate engine state.

Holds every network's fee state, every token's price and per-network
connectivity behind copy-on-write updates and slice-scoped subscriptions.
"""
