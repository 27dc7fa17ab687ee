"""
tokenledger - multi-source price ingestion for a single on-chain asset.

Pulls daily history from several market-data providers and an hourly quote
from an aggregator, and reconciles them into one canonical store.
"""

__version__ = "0.1.0"
