"""
Status Workflow Engine - report lifecycle state machine.

DESIGN PRINCIPLES:
- Every transition is authorized before it is validated
- Re-requesting the current status is a successful no-op
- Terminal states (resolved, recovered, rejected) accept nothing further
- Only moderators and above close a report as resolved or recovered
- Writes are conditional on the status/updated_at that was read (no lost updates)
- Accepted transitions are logged in status_history and audited
"""

from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union
import logging

from app.core.errors import ErrorCode, PolicyError, not_found, validation_error
from app.models.base import utc_now
from app.models.principal import Principal
from app.models.report import Report, ReportStatus, REPORTS_COLLECTION
from app.services.audit_logger import AuditLogger
from app.services.policy_evaluator import Action, PolicyEvaluator
from app.store.base import RecordStore, RecordNotFound, StoreConflict

logger = logging.getLogger(__name__)


class ReportLifecycleMachine:
    """
    Strict state machine for report status transitions.

    pending    -> active, rejected
    active     -> dispatched, resolved, rejected
    dispatched -> en_route, resolved
    en_route   -> on_scene, resolved
    on_scene   -> resolved, recovered
    """

    # Allowed transitions map: {from_status: [to_status, ...]}
    ALLOWED_TRANSITIONS: Dict[ReportStatus, List[ReportStatus]] = {
        ReportStatus.PENDING: [ReportStatus.ACTIVE, ReportStatus.REJECTED],
        ReportStatus.ACTIVE: [ReportStatus.DISPATCHED, ReportStatus.RESOLVED, ReportStatus.REJECTED],
        ReportStatus.DISPATCHED: [ReportStatus.EN_ROUTE, ReportStatus.RESOLVED],
        ReportStatus.EN_ROUTE: [ReportStatus.ON_SCENE, ReportStatus.RESOLVED],
        ReportStatus.ON_SCENE: [ReportStatus.RESOLVED, ReportStatus.RECOVERED],
        ReportStatus.RESOLVED: [],
        ReportStatus.RECOVERED: [],
        ReportStatus.REJECTED: [],
    }

    TERMINAL_STATES: FrozenSet[ReportStatus] = frozenset({
        ReportStatus.RESOLVED,
        ReportStatus.RECOVERED,
        ReportStatus.REJECTED,
    })

    # Closing an incident is a moderator decision, separate from field work
    CLOSING_STATES: FrozenSet[ReportStatus] = frozenset({
        ReportStatus.RESOLVED,
        ReportStatus.RECOVERED,
    })

    def __init__(self, store: RecordStore, evaluator: PolicyEvaluator, audit: AuditLogger):
        self.store = store
        self.evaluator = evaluator
        self.audit = audit

    @staticmethod
    def parse_status(literal: Union[str, ReportStatus]) -> ReportStatus:
        if isinstance(literal, ReportStatus):
            return literal
        try:
            return ReportStatus(literal)
        except ValueError:
            allowed = ", ".join(status.value for status in ReportStatus)
            raise validation_error(f"Unknown report status '{literal}'. Allowed: {allowed}")

    @classmethod
    def is_terminal(cls, status: Union[str, ReportStatus]) -> bool:
        return cls.parse_status(status) in cls.TERMINAL_STATES

    @classmethod
    def is_valid_transition(cls, from_status: Union[str, ReportStatus], to_status: Union[str, ReportStatus]) -> bool:
        """
        Check if a status transition is valid.

        Same status is always valid (no-op). Unknown literals are never valid.
        """
        try:
            from_enum = cls.parse_status(from_status)
            to_enum = cls.parse_status(to_status)
        except PolicyError:
            return False

        if from_enum == to_enum:
            return True
        return to_enum in cls.ALLOWED_TRANSITIONS.get(from_enum, [])

    @classmethod
    def get_allowed_transitions(cls, current_status: Union[str, ReportStatus]) -> List[str]:
        try:
            current_enum = cls.parse_status(current_status)
        except PolicyError:
            return []
        return [status.value for status in cls.ALLOWED_TRANSITIONS.get(current_enum, [])]

    @staticmethod
    def create_status_history_entry(
        from_status: ReportStatus,
        to_status: ReportStatus,
        changed_by: str,
        note: Optional[str] = None
    ) -> Dict[str, Any]:
        return {
            "from": from_status.value,
            "to": to_status.value,
            "changed_by": changed_by,
            "timestamp": utc_now(),
            "note": note or ""
        }

    def transition(
        self,
        report: Report,
        target_status: Union[str, ReportStatus],
        actor: Optional[Principal],
        note: Optional[str] = None
    ) -> Report:
        """
        Authorize, validate and apply a status transition.

        Args:
            report: Report as read by the caller; its status/updated_at are the
                write precondition
            target_status: Desired status
            actor: Principal requesting the change
            note: Optional note stored in status_history

        Returns:
            The updated report (or the unchanged report for a no-op)

        Raises:
            PolicyError: ValidationError, any authorization denial,
                InvalidTransition, NotFound, Conflict
        """
        target = self.parse_status(target_status)

        action = Action.CLOSE_REPORT if target in self.CLOSING_STATES else Action.TRANSITION_REPORT
        self.evaluator.require(actor, action, report)

        if target == report.status:
            logger.info(f"Report {report.id} already {target.value}, nothing to do")
            return report

        changes = self.plan_changes(report, [(target, note)], actor)

        try:
            updated = self.store.update_if_unchanged(
                REPORTS_COLLECTION,
                report.id,
                expected={"status": report.status.value, "updated_at": report.updated_at},
                changes=changes
            )
        except StoreConflict:
            raise PolicyError(ErrorCode.CONFLICT)
        except RecordNotFound:
            raise not_found("Report", report.id)

        self.record_step(actor, report.id, report.status, target)
        return Report(**updated)

    def plan_changes(
        self,
        report: Report,
        path: List[Tuple[ReportStatus, Optional[str]]],
        actor: Principal
    ) -> Dict[str, Any]:
        """
        Validate a sequence of steps starting from the report's current status.

        Nothing is written. Returns the status, updated_at and status_history
        fields that apply every step, so a caller can write them together with
        its own fields in a single conditional update.
        """
        current = report.status
        history = list(report.status_history)

        for target, note in path:
            if not self.is_valid_transition(current, target) or target == current:
                allowed = self.get_allowed_transitions(current)
                raise PolicyError(
                    ErrorCode.INVALID_TRANSITION,
                    f"Invalid status transition: {current.value} → {target.value}. "
                    f"Allowed transitions from {current.value}: {allowed}"
                )
            history.append(self.create_status_history_entry(current, target, actor.id, note))
            current = target

        return {
            "status": current.value,
            "updated_at": utc_now(),
            "status_history": history,
        }

    def record_step(
        self,
        actor: Principal,
        report_id: str,
        from_status: ReportStatus,
        to_status: ReportStatus
    ) -> None:
        """Audit one step that has already been written."""
        self.audit.record(
            actor_id=actor.id,
            action=Action.TRANSITION_REPORT.value,
            target_id=report_id,
            details={"from": from_status.value, "to": to_status.value}
        )
        logger.info(f"✅ {actor.id} moved report {report_id}: {from_status.value} → {to_status.value}")
