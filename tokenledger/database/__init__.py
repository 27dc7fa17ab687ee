"""
Document store.

Holds the canonical daily and hourly records in keyed JSON documents.
"""

from .manager import DocumentStore, DocumentRecord

__all__ = ["DocumentStore", "DocumentRecord"]
