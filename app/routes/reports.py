"""
Report endpoints - API routes for report intake, lifecycle and dispatch.

Every route identifies the caller via the X-Actor-Id header. Refusals are
raised as PolicyError and rendered by the handler in app.main.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.core.errors import ErrorCode, PolicyError
from app.models.dispatch import DispatchRecord, DispatchRequest
from app.models.principal import Principal
from app.models.report import Report, ReportCreate, SeverityUpdateRequest, StatusUpdateRequest
from app.services.report_service import ReportService, get_report_service
from app.utils.security import get_current_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=Report)
async def submit_report(
    report: ReportCreate,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    """
    Submit a new vehicle alert or crime report.

    Returns the created report with generated ID. It starts pending and
    is not owned by any company until it is dispatched.
    """
    try:
        logger.info(f"📝 POST /reports - {actor.id} filing {report.kind} report")
        return service.create_report(actor, report)
    except PolicyError:
        raise
    except Exception as e:
        logger.error(f"❌ POST /reports - Report creation failed: {e}", exc_info=True)
        raise PolicyError(ErrorCode.INTERNAL) from e


@router.get("", response_model=List[Report])
async def list_reports(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    kind: Optional[str] = Query(None, description="vehicle | crime"),
    company_id: Optional[str] = Query(None, description="Filter by owning company"),
    limit: int = Query(50, ge=1, le=500),
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    if not actor.is_active:
        raise PolicyError(ErrorCode.ACTOR_INACTIVE)
    return service.list_reports(status=status_filter, kind=kind, company_id=company_id, limit=limit)


@router.get("/{report_id}", response_model=Report)
async def get_report(
    report_id: str,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    if not actor.is_active:
        raise PolicyError(ErrorCode.ACTOR_INACTIVE)
    return service.get_report(report_id)


@router.patch("/{report_id}/status", response_model=Report)
async def update_report_status(
    report_id: str,
    request: StatusUpdateRequest,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    """
    Move a report along its lifecycle.

    Requesting the report's current status succeeds without changing it.
    Illegal edges and moves out of closed states return 409.
    """
    try:
        return service.transition_report(actor, report_id, request.status, note=request.note)
    except PolicyError:
        raise
    except Exception as e:
        logger.error(f"❌ PATCH /reports/{report_id}/status failed: {e}", exc_info=True)
        raise PolicyError(ErrorCode.INTERNAL) from e


@router.patch("/{report_id}/severity", response_model=Report)
async def update_report_severity(
    report_id: str,
    request: SeverityUpdateRequest,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    try:
        return service.set_severity(actor, report_id, request.severity)
    except PolicyError:
        raise
    except Exception as e:
        logger.error(f"❌ PATCH /reports/{report_id}/severity failed: {e}", exc_info=True)
        raise PolicyError(ErrorCode.INTERNAL) from e


@router.post("/{report_id}/dispatch", status_code=status.HTTP_201_CREATED, response_model=DispatchRecord)
async def dispatch_report(
    report_id: str,
    request: DispatchRequest,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    """
    Assign a report to a responder.

    Fails with 409 AlreadyDispatched while another dispatch is still open;
    use /dispatch/reassign to hand the report over.
    """
    try:
        return service.assign_dispatch(actor, report_id, request)
    except PolicyError:
        raise
    except Exception as e:
        logger.error(f"❌ POST /reports/{report_id}/dispatch failed: {e}", exc_info=True)
        raise PolicyError(ErrorCode.INTERNAL) from e


@router.post("/{report_id}/dispatch/reassign", status_code=status.HTTP_201_CREATED, response_model=DispatchRecord)
async def reassign_report(
    report_id: str,
    request: DispatchRequest,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    try:
        return service.reassign_dispatch(actor, report_id, request)
    except PolicyError:
        raise
    except Exception as e:
        logger.error(f"❌ POST /reports/{report_id}/dispatch/reassign failed: {e}", exc_info=True)
        raise PolicyError(ErrorCode.INTERNAL) from e


@router.get("/{report_id}/dispatch", response_model=List[DispatchRecord])
async def list_report_dispatches(
    report_id: str,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    """Dispatch records of a report, newest first."""
    if not actor.is_active:
        raise PolicyError(ErrorCode.ACTOR_INACTIVE)
    return service.list_dispatches(report_id)
