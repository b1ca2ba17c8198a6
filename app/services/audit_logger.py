"""
Audit Logger - append-only record of every accepted mutation.

Events are written to the "audit_events" collection and mirrored to the
application log. Denied requests are not audited here; the policy evaluator
logs them.
"""

from typing import Any, Dict, List, Optional
import logging

from app.core.errors import ErrorCode, PolicyError
from app.models.audit import AuditEvent
from app.models.base import to_record
from app.store.base import RecordStore

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "audit_events"


class AuditLogger:

    def __init__(self, store: RecordStore):
        self.store = store

    def record(
        self,
        actor_id: str,
        action: str,
        target_id: str,
        outcome: str = "accepted",
        details: Optional[Dict[str, Any]] = None
    ) -> AuditEvent:
        """
        Append one audit event.

        Raises:
            PolicyError(Internal): the audit sink could not be written
        """
        event = AuditEvent(
            actor_id=actor_id,
            action=action,
            target_id=target_id,
            outcome=outcome,
            details=details or {}
        )

        try:
            saved = self.store.create(AUDIT_COLLECTION, to_record(event, exclude={"id"}))
        except Exception as e:
            logger.error(
                f"Failed to write audit event actor={actor_id} action={action} target={target_id}: {e}",
                exc_info=True
            )
            raise PolicyError(ErrorCode.INTERNAL) from e

        logger.info(f"[AUDIT] {actor_id} {action} {target_id} -> {outcome}")
        return AuditEvent(**saved)

    def events_for_target(self, target_id: str) -> List[AuditEvent]:
        records = self.store.query(AUDIT_COLLECTION, {"target_id": target_id})
        events = [AuditEvent(**record) for record in records]
        events.sort(key=lambda e: e.timestamp)
        return events

    def list_events(
        self,
        target_id: Optional[str] = None,
        action: Optional[str] = None,
        actor_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """Equality-filtered events, newest first."""
        filters: Dict[str, Any] = {}
        if target_id:
            filters["target_id"] = target_id
        if action:
            filters["action"] = action
        if actor_id:
            filters["actor_id"] = actor_id

        events = [AuditEvent(**record) for record in self.store.query(AUDIT_COLLECTION, filters)]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit] if limit is not None else events
