"""
Record store layer.

Persistence is reached only through RecordStore; services never talk to
Firestore directly.
"""

from app.store.base import RecordStore, StoreError, StoreConflict, RecordNotFound
from app.store.memory_store import InMemoryRecordStore

__all__ = [
    "RecordStore",
    "StoreError",
    "StoreConflict",
    "RecordNotFound",
    "InMemoryRecordStore",
]
