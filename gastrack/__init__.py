"""
Gastrack - Multi-Network Fee Ingestion and Aggregation Engine

Ingests live block-head fee data and oracle token prices for several
independent networks, keeps a bounded in-memory time series per network and
aggregates it into OHLC candles for charts and cost simulation.
"""

__version__ = "0.1.0"
__author__ = "Gastrack Team"
