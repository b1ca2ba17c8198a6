"""
Firestore-backed record store.

update_if_unchanged runs inside a Firestore transaction: the document is read
within the transaction, compared against the expected values, and written only
if nothing changed. Firestore aborts the commit if the document was written by
someone else after the transactional read; that abort is reported as
StoreConflict and never retried.
"""

from firebase_admin import firestore
from google.api_core.exceptions import Aborted, AlreadyExists
from typing import Any, Dict, List, Optional
import logging

from app.utils.firestore_helpers import apply_equality_filters
from .base import RecordStore, RecordNotFound, StoreConflict, StoreError

logger = logging.getLogger(__name__)


class FirestoreRecordStore(RecordStore):

    def __init__(self, db: firestore.Client):
        self.db = db

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            doc = self.db.collection(collection).document(record_id).get()
        except Exception as e:
            raise StoreError(f"Failed to read {collection}/{record_id}: {e}") from e

        if not doc.exists:
            return None
        data = doc.to_dict()
        data["id"] = doc.id
        return data

    def create(self, collection: str, data: Dict[str, Any], record_id: Optional[str] = None) -> Dict[str, Any]:
        payload = {k: v for k, v in data.items() if k != "id"}
        collection_ref = self.db.collection(collection)
        doc_ref = collection_ref.document(record_id) if record_id else collection_ref.document()

        try:
            doc_ref.create(payload)
        except AlreadyExists as e:
            raise StoreConflict(f"{collection}/{doc_ref.id} already exists") from e
        except Exception as e:
            raise StoreError(f"Failed to create {collection}/{doc_ref.id}: {e}") from e

        return {**payload, "id": doc_ref.id}

    def update_if_unchanged(
        self,
        collection: str,
        record_id: str,
        expected: Dict[str, Any],
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        doc_ref = self.db.collection(collection).document(record_id)
        payload = {k: v for k, v in changes.items() if k != "id"}

        @firestore.transactional
        def _apply(transaction) -> Dict[str, Any]:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"{collection}/{record_id} not found")

            current = snapshot.to_dict()
            for key, value in expected.items():
                if current.get(key) != value:
                    raise StoreConflict(f"{collection}/{record_id} was modified concurrently")

            transaction.update(doc_ref, payload)
            current.update(payload)
            return current

        try:
            updated = _apply(self.db.transaction(max_attempts=1))
        except StoreError:
            raise
        except Aborted as e:
            raise StoreConflict(f"{collection}/{record_id} was modified concurrently") from e
        except ValueError as e:
            # With max_attempts=1 a lost commit is re-raised as ValueError chained from Aborted
            if isinstance(e.__cause__, Aborted):
                raise StoreConflict(f"{collection}/{record_id} was modified concurrently") from e
            raise StoreError(f"Failed to update {collection}/{record_id}: {e}") from e
        except Exception as e:
            raise StoreError(f"Failed to update {collection}/{record_id}: {e}") from e

        updated["id"] = record_id
        return updated

    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        query = apply_equality_filters(self.db.collection(collection), filters, limit)

        try:
            results = []
            for doc in query.stream():
                data = doc.to_dict()
                data["id"] = doc.id
                results.append(data)
            return results
        except Exception as e:
            raise StoreError(f"Failed to query {collection}: {e}") from e

    def delete(self, collection: str, record_id: str) -> None:
        doc_ref = self.db.collection(collection).document(record_id)
        try:
            if not doc_ref.get().exists:
                raise RecordNotFound(f"{collection}/{record_id} not found")
            doc_ref.delete()
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to delete {collection}/{record_id}: {e}") from e

    def ping(self) -> bool:
        try:
            list(self.db.collection("_health").limit(1).stream())
        except Exception as e:
            logger.warning(f"Firestore ping failed: {e}")
            return False
        return True
