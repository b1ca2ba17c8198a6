"""
In-memory record store.

Used with USE_MOCK_DB=true for local development and by the test suite.
A single lock serializes every read-modify-write, which gives
update_if_unchanged the same atomicity a Firestore transaction provides.
"""

import copy
import threading
import uuid
from typing import Any, Dict, List, Optional
import logging

from .base import RecordStore, RecordNotFound, StoreConflict

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._collection(collection).get(record_id)
            if data is None:
                return None
            return {**copy.deepcopy(data), "id": record_id}

    def create(self, collection: str, data: Dict[str, Any], record_id: Optional[str] = None) -> Dict[str, Any]:
        record_id = record_id or uuid.uuid4().hex
        with self._lock:
            docs = self._collection(collection)
            if record_id in docs:
                raise StoreConflict(f"{collection}/{record_id} already exists")
            stored = copy.deepcopy({k: v for k, v in data.items() if k != "id"})
            docs[record_id] = stored
            return {**copy.deepcopy(stored), "id": record_id}

    def update_if_unchanged(
        self,
        collection: str,
        record_id: str,
        expected: Dict[str, Any],
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        with self._lock:
            docs = self._collection(collection)
            current = docs.get(record_id)
            if current is None:
                raise RecordNotFound(f"{collection}/{record_id} not found")

            for key, value in expected.items():
                if current.get(key) != value:
                    logger.info(
                        f"Conditional write rejected on {collection}/{record_id}: "
                        f"{key} is {current.get(key)!r}, expected {value!r}"
                    )
                    raise StoreConflict(f"{collection}/{record_id} was modified concurrently")

            current.update(copy.deepcopy({k: v for k, v in changes.items() if k != "id"}))
            return {**copy.deepcopy(current), "id": record_id}

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        filters = filters or {}
        with self._lock:
            results = []
            for record_id, data in self._collection(collection).items():
                if all(data.get(k) == v for k, v in filters.items()):
                    results.append({**copy.deepcopy(data), "id": record_id})
                    if limit is not None and len(results) >= limit:
                        break
            return results

    def delete(self, collection: str, record_id: str) -> None:
        with self._lock:
            docs = self._collection(collection)
            if record_id not in docs:
                raise RecordNotFound(f"{collection}/{record_id} not found")
            del docs[record_id]
