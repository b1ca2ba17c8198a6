from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Storage or collaborator failure. Surfaces to callers as an opaque Internal error."""


class RecordNotFound(StoreError):
    pass


class StoreConflict(StoreError):
    """The record changed since it was read; the conditional write was not applied."""


class RecordStore(ABC):
    """
    Generic record store for principals, companies, reports and dispatch records.

    Contract:
    - Records are plain dicts keyed by a string id; returned dicts always carry "id".
    - update_if_unchanged is the only way to mutate an existing record. It reads,
      compares every key in `expected` against the stored value and writes
      `changes` in one atomic step, raising StoreConflict when any expected
      value differs.
    - Implementations never retry a conflicting write.
    """

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def create(self, collection: str, data: Dict[str, Any], record_id: Optional[str] = None) -> Dict[str, Any]:
        """Insert a new record. Raises StoreConflict if record_id is already taken."""
        raise NotImplementedError

    @abstractmethod
    def update_if_unchanged(
        self,
        collection: str,
        record_id: str,
        expected: Dict[str, Any],
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Equality-filtered listing."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        """Lightweight connectivity check."""
        return True
