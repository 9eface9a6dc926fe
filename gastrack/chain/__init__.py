"""
Chain connectivity and block ingestion.

Wraps the JSON-RPC transport, owns per-network head subscriptions and turns
head notifications into fee observations.
"""
