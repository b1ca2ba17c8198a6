"""
Report service - Business logic for citizen report handling.
Entry point for report intake, lifecycle changes and dispatch work.

DESIGN NOTE:
- Any active principal may file a report; it starts pending and community-wide
- Every mutation goes through the policy evaluator before storage is touched
- Lifecycle rules live in ReportLifecycleMachine, dispatch rules in
  DispatchAssignmentTracker; this service loads records and delegates
"""

from typing import Any, Dict, List, Optional, Union
import logging

from app.core.errors import ErrorCode, PolicyError, not_found, validation_error
from app.models.base import to_record, utc_now
from app.models.dispatch import DispatchRecord, DispatchRequest
from app.models.principal import Principal
from app.models.report import (
    Report,
    ReportCreate,
    ReportKind,
    ReportStatus,
    Severity,
    REPORTS_COLLECTION,
)
from app.services.dispatch_tracker import DispatchAssignmentTracker
from app.services.policy_evaluator import Action
from app.services.principal_service import PrincipalService, get_principal_service
from app.services.status_workflow import ReportLifecycleMachine
from app.store.base import RecordStore, RecordNotFound, StoreConflict

logger = logging.getLogger(__name__)


class ReportService:
    """
    Service for reports and their dispatch records.
    Shares the evaluator, audit logger and principal lookup of PrincipalService.
    """

    def __init__(self, store: RecordStore, principals: PrincipalService):
        self.store = store
        self.principals = principals
        self.evaluator = principals.evaluator
        self.audit = principals.audit
        self.lifecycle = ReportLifecycleMachine(store, self.evaluator, self.audit)
        self.dispatch = DispatchAssignmentTracker(
            store,
            self.evaluator,
            self.lifecycle,
            self.audit,
            principal_lookup=principals.get_principal
        )

    @staticmethod
    def parse_kind(literal: Union[str, ReportKind]) -> ReportKind:
        if isinstance(literal, ReportKind):
            return literal
        try:
            return ReportKind(literal)
        except ValueError:
            allowed = ", ".join(kind.value for kind in ReportKind)
            raise validation_error(f"Unknown report kind '{literal}'. Allowed: {allowed}")

    @staticmethod
    def parse_severity(literal: Union[str, Severity]) -> Severity:
        if isinstance(literal, Severity):
            return literal
        try:
            return Severity(literal)
        except ValueError:
            allowed = ", ".join(severity.value for severity in Severity)
            raise validation_error(f"Unknown severity '{literal}'. Allowed: {allowed}")

    def create_report(self, actor: Principal, report_data: ReportCreate) -> Report:
        """
        File a new report.

        Vehicle alerts need a number plate, crime reports need a crime type.
        The report starts pending with no company.

        Args:
            actor: Reporting principal
            report_data: Validated request body

        Returns:
            Report: The stored report with its generated id
        """
        kind = self.parse_kind(report_data.kind)
        severity = self.parse_severity(report_data.severity)

        self.evaluator.require(actor, Action.CREATE_REPORT)

        license_plate = report_data.license_plate
        if kind == ReportKind.VEHICLE:
            if not license_plate or not license_plate.strip():
                raise validation_error("Vehicle reports require a license plate")
            license_plate = license_plate.strip().upper()
        if kind == ReportKind.CRIME and not (report_data.crime_type and report_data.crime_type.strip()):
            raise validation_error("Crime reports require a crime type")

        draft = Report(
            id="",
            kind=kind,
            severity=severity,
            status=ReportStatus.PENDING,
            reporter_id=actor.id,
            title=report_data.title.strip(),
            description=report_data.description,
            location=report_data.location,
            license_plate=license_plate,
            vehicle_make=report_data.vehicle_make,
            vehicle_model=report_data.vehicle_model,
            vehicle_color=report_data.vehicle_color,
            crime_type=report_data.crime_type
        )

        saved = self.store.create(REPORTS_COLLECTION, to_record(draft, exclude={"id"}))
        report = Report(**saved)

        self.audit.record(
            actor_id=actor.id,
            action=Action.CREATE_REPORT.value,
            target_id=report.id,
            details={"kind": kind.value, "severity": severity.value}
        )

        logger.info(f"✅ Report created: {report.id} ({kind.value}, {severity.value}) by {actor.id}")
        return report

    def get_report(self, report_id: str) -> Report:
        data = self.store.get(REPORTS_COLLECTION, report_id)
        if data is None:
            raise not_found("Report", report_id)
        return Report(**data)

    def list_reports(
        self,
        status: Optional[str] = None,
        kind: Optional[str] = None,
        company_id: Optional[str] = None,
        limit: int = 50
    ) -> List[Report]:
        """
        List reports, newest first.

        Args:
            status: Filter by status literal
            kind: Filter by kind literal
            company_id: Filter by owning company
            limit: Maximum number of reports to return
        """
        filters: Dict[str, Any] = {}
        if status:
            filters["status"] = self.lifecycle.parse_status(status).value
        if kind:
            filters["kind"] = self.parse_kind(kind).value
        if company_id:
            filters["company_id"] = company_id

        reports = [Report(**data) for data in self.store.query(REPORTS_COLLECTION, filters)]
        reports.sort(key=lambda r: r.created_at, reverse=True)
        return reports[:limit]

    def transition_report(
        self,
        actor: Principal,
        report_id: str,
        target_status: str,
        note: Optional[str] = None
    ) -> Report:
        target = self.lifecycle.parse_status(target_status)
        report = self.get_report(report_id)
        return self.lifecycle.transition(report, target, actor, note=note)

    def set_severity(self, actor: Principal, report_id: str, severity_literal: str) -> Report:
        """
        Re-grade a report's severity. Authorized like a status change;
        closed reports keep the severity they were closed with.
        """
        severity = self.parse_severity(severity_literal)
        report = self.get_report(report_id)

        self.evaluator.require(actor, Action.TRANSITION_REPORT, report)

        if severity == report.severity:
            return report
        if self.lifecycle.is_terminal(report.status):
            raise PolicyError(ErrorCode.REPORT_CLOSED, f"Report {report.id} is {report.status.value}")

        try:
            updated = self.store.update_if_unchanged(
                REPORTS_COLLECTION,
                report.id,
                expected={"severity": report.severity.value, "updated_at": report.updated_at},
                changes={"severity": severity.value, "updated_at": utc_now()}
            )
        except StoreConflict:
            raise PolicyError(ErrorCode.CONFLICT)
        except RecordNotFound:
            raise not_found("Report", report.id)

        self.audit.record(
            actor_id=actor.id,
            action="set_severity",
            target_id=report.id,
            details={"from": report.severity.value, "to": severity.value}
        )
        logger.info(f"✅ {actor.id} set severity of report {report.id}: {report.severity.value} → {severity.value}")
        return Report(**updated)

    def assign_dispatch(self, actor: Principal, report_id: str, request: DispatchRequest) -> DispatchRecord:
        report = self.get_report(report_id)
        return self.dispatch.assign(report, request.responder_id, request.priority, request.notes, actor)

    def reassign_dispatch(self, actor: Principal, report_id: str, request: DispatchRequest) -> DispatchRecord:
        report = self.get_report(report_id)
        return self.dispatch.reassign(report, request.responder_id, request.priority, request.notes, actor)

    def list_dispatches(self, report_id: str) -> List[DispatchRecord]:
        self.get_report(report_id)
        return self.dispatch.list_dispatches(report_id)

    def update_dispatch_status(self, actor: Principal, dispatch_id: str, target_status: str) -> DispatchRecord:
        target = self.dispatch.parse_status(target_status)
        record = self.dispatch.get_dispatch(dispatch_id)
        return self.dispatch.update_dispatch_status(record, target, actor)


# Global service instance (singleton pattern)
_report_service: Optional[ReportService] = None


def get_report_service() -> ReportService:
    """
    Get or create ReportService singleton instance.

    Returns:
        ReportService: The global report service instance
    """
    global _report_service
    if _report_service is None:
        principals = get_principal_service()
        _report_service = ReportService(principals.store, principals)
    return _report_service
