"""
Dispatch Assignment Tracker - assigns reports to responders and tracks the
dispatch record's own progression.

DESIGN PRINCIPLES:
- At most one non-completed dispatch record per report, held through the
  report's active_dispatch_id
- The report is claimed in one conditional write before its record is inserted
- A report's company is set by its first dispatch and changes only through reassign()
- Dispatch status is strictly linear, one forward step at a time
- Completing a dispatch never closes the report; a moderator resolves it separately
"""

from typing import Any, Dict, List, Optional, Tuple, Union
import logging
import uuid

from app.core.errors import ErrorCode, PolicyError, not_found, validation_error
from app.models.base import to_record, utc_now
from app.models.dispatch import DispatchRecord, DispatchStatus, DISPATCHES_COLLECTION
from app.models.principal import Principal, PrincipalStatus, Role
from app.models.report import Report, ReportStatus, Severity, REPORTS_COLLECTION
from app.services.audit_logger import AuditLogger
from app.services.company_scope import CompanyScopeResolver, PrincipalLookup
from app.services.policy_evaluator import Action, PolicyEvaluator
from app.services.status_workflow import ReportLifecycleMachine
from app.store.base import RecordStore, RecordNotFound, StoreConflict, StoreError

logger = logging.getLogger(__name__)


class DispatchAssignmentTracker:

    # Only forward single steps along this sequence are legal
    DISPATCH_SEQUENCE: List[DispatchStatus] = [
        DispatchStatus.PENDING,
        DispatchStatus.DISPATCHED,
        DispatchStatus.EN_ROUTE,
        DispatchStatus.ON_SCENE,
        DispatchStatus.COMPLETED,
    ]

    def __init__(
        self,
        store: RecordStore,
        evaluator: PolicyEvaluator,
        lifecycle: ReportLifecycleMachine,
        audit: AuditLogger,
        principal_lookup: PrincipalLookup
    ):
        self.store = store
        self.evaluator = evaluator
        self.lifecycle = lifecycle
        self.audit = audit
        self.principal_lookup = principal_lookup

    @staticmethod
    def parse_status(literal: Union[str, DispatchStatus]) -> DispatchStatus:
        if isinstance(literal, DispatchStatus):
            return literal
        try:
            return DispatchStatus(literal)
        except ValueError:
            allowed = ", ".join(status.value for status in DispatchStatus)
            raise validation_error(f"Unknown dispatch status '{literal}'. Allowed: {allowed}")

    @staticmethod
    def parse_priority(literal: Union[str, Severity]) -> Severity:
        if isinstance(literal, Severity):
            return literal
        try:
            return Severity(literal)
        except ValueError:
            allowed = ", ".join(priority.value for priority in Severity)
            raise validation_error(f"Unknown priority '{literal}'. Allowed: {allowed}")

    @classmethod
    def is_valid_transition(cls, from_status: DispatchStatus, to_status: DispatchStatus) -> bool:
        """Same status (no-op) or exactly one step forward."""
        from_index = cls.DISPATCH_SEQUENCE.index(from_status)
        to_index = cls.DISPATCH_SEQUENCE.index(to_status)
        return to_index in (from_index, from_index + 1)

    def list_dispatches(self, report_id: str) -> List[DispatchRecord]:
        records = [
            DispatchRecord(**record)
            for record in self.store.query(DISPATCHES_COLLECTION, {"report_id": report_id})
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def get_active_dispatch(self, report_id: str) -> Optional[DispatchRecord]:
        for record in self.list_dispatches(report_id):
            if record.is_active:
                return record
        return None

    def get_dispatch(self, dispatch_id: str) -> DispatchRecord:
        record = self.store.get(DISPATCHES_COLLECTION, dispatch_id)
        if record is None:
            raise not_found("Dispatch record", dispatch_id)
        return DispatchRecord(**record)

    def assign(
        self,
        report: Report,
        responder_id: str,
        priority: Union[str, Severity],
        notes: Optional[str],
        actor: Optional[Principal]
    ) -> DispatchRecord:
        """
        Assign a report to a responder.

        Claims the report for a new dispatch record, stamps it with the
        responder's company (if it had none) and moves it to dispatched. A
        pending report is activated on the way. All report fields are written
        in one conditional update before the record is inserted.

        Raises:
            PolicyError: NotFound, ValidationError, any authorization denial,
                ReportClosed, AlreadyDispatched, CrossCompany, Conflict
        """
        priority = self.parse_priority(priority)
        self.evaluator.require(actor, Action.CREATE_DISPATCH, report)
        responder = self._load_responder(responder_id)
        self._check_responder_scope(actor, responder)

        if self.lifecycle.is_terminal(report.status):
            raise PolicyError(ErrorCode.REPORT_CLOSED, f"Report {report.id} is {report.status.value}")

        active = self._claimed_dispatch(report)
        if active is not None:
            raise PolicyError(
                ErrorCode.ALREADY_DISPATCHED,
                f"Report {report.id} already has active dispatch {active.id} ({active.status.value})"
            )

        if report.company_id and report.company_id != responder.company_id:
            raise PolicyError(
                ErrorCode.CROSS_COMPANY,
                f"Report {report.id} belongs to company {report.company_id}; use reassign to move it"
            )

        return self._dispatch(report, responder, priority, notes, actor, change_company=False)

    def reassign(
        self,
        report: Report,
        responder_id: str,
        priority: Union[str, Severity],
        notes: Optional[str],
        actor: Optional[Principal]
    ) -> DispatchRecord:
        """
        Supersede the report's active dispatch with a new one.

        The prior record is marked completed before the report is claimed for
        the new one, so a failure after that step leaves the report with no
        active dispatch rather than two. This is the only operation that may
        move a report to another company. Without an active dispatch it
        behaves like assign().
        """
        priority = self.parse_priority(priority)
        self.evaluator.require(actor, Action.CREATE_DISPATCH, report)
        responder = self._load_responder(responder_id)
        self._check_responder_scope(actor, responder)

        if self.lifecycle.is_terminal(report.status):
            raise PolicyError(ErrorCode.REPORT_CLOSED, f"Report {report.id} is {report.status.value}")

        active = self._claimed_dispatch(report)
        if active is not None:
            self._complete_superseded(active, actor)

        return self._dispatch(report, responder, priority, notes, actor, change_company=True)

    def update_dispatch_status(
        self,
        record: DispatchRecord,
        target_status: Union[str, DispatchStatus],
        actor: Optional[Principal]
    ) -> DispatchRecord:
        """
        Move a dispatch record one step along its linear path.

        Re-requesting the current status is a no-op. Completion releases the
        report for a new dispatch but leaves its status as it is.
        """
        target = self.parse_status(target_status)

        report_data = self.store.get(REPORTS_COLLECTION, record.report_id)
        if report_data is None:
            raise not_found("Report", record.report_id)
        report = Report(**report_data)

        self.evaluator.require(actor, Action.TRANSITION_DISPATCH, report)

        if target == record.status:
            logger.info(f"Dispatch {record.id} already {target.value}, nothing to do")
            return record

        if not self.is_valid_transition(record.status, target):
            position = self.DISPATCH_SEQUENCE.index(record.status)
            allowed = [s.value for s in self.DISPATCH_SEQUENCE[position + 1:position + 2]]
            raise PolicyError(
                ErrorCode.INVALID_TRANSITION,
                f"Invalid dispatch transition: {record.status.value} → {target.value}. Allowed: {allowed}"
            )

        updated = self._write_status(record, target)
        if target == DispatchStatus.COMPLETED:
            self._release_report(record)

        self.audit.record(
            actor_id=actor.id,
            action=Action.TRANSITION_DISPATCH.value,
            target_id=record.id,
            details={"report_id": record.report_id, "from": record.status.value, "to": target.value}
        )

        logger.info(f"✅ {actor.id} moved dispatch {record.id}: {record.status.value} → {target.value}")
        return updated

    def _load_responder(self, responder_id: str) -> Principal:
        responder = self.principal_lookup(responder_id)
        if responder is None:
            raise not_found("Responder", responder_id)
        if responder.role != Role.RESPONDER:
            raise validation_error(f"Principal {responder_id} is not a responder")
        if responder.status != PrincipalStatus.ACTIVE:
            raise validation_error(f"Responder {responder_id} is not active")
        if not responder.company_id:
            raise validation_error(f"Responder {responder_id} is not assigned to a company")
        return responder

    @staticmethod
    def _check_responder_scope(actor: Principal, responder: Principal) -> None:
        # Only a global admin may send work to another company's responders
        if CompanyScopeResolver.resolve_scope(actor).is_global:
            return
        if responder.company_id != actor.company_id:
            raise PolicyError(ErrorCode.CROSS_COMPANY, "Responder belongs to another company")

    def _claimed_dispatch(self, report: Report) -> Optional[DispatchRecord]:
        """
        The non-completed record holding the report, if any.

        A claim whose record is not stored yet belongs to an assignment still
        in flight and is reported as Conflict. A claim on a completed record
        is stale and counts as free.
        """
        if not report.active_dispatch_id:
            return None

        data = self.store.get(DISPATCHES_COLLECTION, report.active_dispatch_id)
        if data is None:
            raise PolicyError(
                ErrorCode.CONFLICT,
                f"Report {report.id} is being dispatched by another request"
            )

        record = DispatchRecord(**data)
        return record if record.is_active else None

    def _dispatch(
        self,
        report: Report,
        responder: Principal,
        priority: Severity,
        notes: Optional[str],
        actor: Principal,
        change_company: bool
    ) -> DispatchRecord:
        record_id = uuid.uuid4().hex
        changes: Dict[str, Any] = {
            "assigned_responder_id": responder.id,
            "active_dispatch_id": record_id,
            "updated_at": utc_now(),
        }
        if report.company_id is None or change_company:
            changes["company_id"] = responder.company_id

        path: List[Tuple[ReportStatus, Optional[str]]] = []
        if report.status == ReportStatus.PENDING:
            path.append((ReportStatus.ACTIVE, "Activated for dispatch"))
        if report.status in (ReportStatus.PENDING, ReportStatus.ACTIVE):
            path.append((ReportStatus.DISPATCHED, f"Dispatched to {responder.id}"))

        if path:
            self.evaluator.require(actor, Action.TRANSITION_REPORT, report)
            changes.update(self.lifecycle.plan_changes(report, path, actor))

        # The claim is the only write guarding one active dispatch per report
        try:
            self.store.update_if_unchanged(
                REPORTS_COLLECTION,
                report.id,
                expected={
                    "status": report.status.value,
                    "updated_at": report.updated_at,
                    "active_dispatch_id": report.active_dispatch_id,
                },
                changes=changes
            )
        except StoreConflict:
            raise PolicyError(ErrorCode.CONFLICT)
        except RecordNotFound:
            raise not_found("Report", report.id)

        try:
            record = self._create_record(record_id, report, responder, priority, notes, actor)
        except Exception:
            self._undo_claim(report, record_id)
            raise

        from_status = report.status
        for to_status, _ in path:
            self.lifecycle.record_step(actor, report.id, from_status, to_status)
            from_status = to_status

        self.audit.record(
            actor_id=actor.id,
            action=Action.CREATE_DISPATCH.value,
            target_id=record.id,
            details={"report_id": report.id, "assigned_to": responder.id, "priority": priority.value}
        )

        logger.info(f"✅ {actor.id} dispatched report {report.id} to {responder.id} ({priority.value})")
        return record

    def _undo_claim(self, report: Report, record_id: str) -> None:
        """Put back the report fields the claim replaced."""
        restore = {
            "status": report.status.value,
            "status_history": report.status_history,
            "assigned_responder_id": report.assigned_responder_id,
            "company_id": report.company_id,
            "active_dispatch_id": report.active_dispatch_id,
            "updated_at": utc_now(),
        }
        try:
            self.store.update_if_unchanged(
                REPORTS_COLLECTION,
                report.id,
                expected={"active_dispatch_id": record_id},
                changes=restore
            )
            logger.warning(f"⚠️ Dispatch {record_id} was not stored; report {report.id} restored")
        except StoreError as e:
            logger.error(
                f"❌ Could not restore report {report.id} after failed dispatch {record_id}: {e}",
                exc_info=True
            )

    def _release_report(self, record: DispatchRecord) -> None:
        try:
            self.store.update_if_unchanged(
                REPORTS_COLLECTION,
                record.report_id,
                expected={"active_dispatch_id": record.id},
                changes={"active_dispatch_id": None, "updated_at": utc_now()}
            )
        except StoreConflict:
            # A reassignment already replaced the claim
            logger.info(f"Report {record.report_id} no longer held by dispatch {record.id}")
        except RecordNotFound:
            raise not_found("Report", record.report_id)

    def _complete_superseded(self, record: DispatchRecord, actor: Principal) -> None:
        self._write_status(record, DispatchStatus.COMPLETED)
        self.audit.record(
            actor_id=actor.id,
            action=Action.TRANSITION_DISPATCH.value,
            target_id=record.id,
            details={"report_id": record.report_id, "from": record.status.value, "to": "completed", "superseded": True}
        )
        logger.info(f"Dispatch {record.id} superseded by reassignment from {actor.id}")

    def _write_status(self, record: DispatchRecord, target: DispatchStatus) -> DispatchRecord:
        try:
            updated = self.store.update_if_unchanged(
                DISPATCHES_COLLECTION,
                record.id,
                expected={"status": record.status.value, "updated_at": record.updated_at},
                changes={"status": target.value, "updated_at": utc_now()}
            )
        except StoreConflict:
            raise PolicyError(ErrorCode.CONFLICT)
        except RecordNotFound:
            raise not_found("Dispatch record", record.id)
        return DispatchRecord(**updated)

    def _create_record(
        self,
        record_id: str,
        report: Report,
        responder: Principal,
        priority: Severity,
        notes: Optional[str],
        actor: Principal
    ) -> DispatchRecord:
        draft = DispatchRecord(
            id=record_id,
            report_id=report.id,
            assigned_to=responder.id,
            priority=priority,
            status=DispatchStatus.PENDING,
            notes=notes,
            dispatched_by=actor.id
        )
        saved = self.store.create(DISPATCHES_COLLECTION, to_record(draft, exclude={"id"}), record_id=record_id)
        return DispatchRecord(**saved)
