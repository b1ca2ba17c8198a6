"""
Dispatch endpoints - progression of an individual dispatch record.
"""

import logging

from fastapi import APIRouter, Depends

from app.core.errors import ErrorCode, PolicyError
from app.models.dispatch import DispatchRecord
from app.models.principal import Principal
from app.models.report import StatusUpdateRequest
from app.services.report_service import ReportService, get_report_service
from app.utils.security import get_current_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dispatches", tags=["Dispatch"])


@router.patch("/{dispatch_id}/status", response_model=DispatchRecord)
async def update_dispatch_status(
    dispatch_id: str,
    request: StatusUpdateRequest,
    actor: Principal = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service)
):
    """
    Advance a dispatch record by one step:
    pending → dispatched → en_route → on_scene → completed.

    Completing a dispatch does not resolve the report.
    """
    try:
        return service.update_dispatch_status(actor, dispatch_id, request.status)
    except PolicyError:
        raise
    except Exception as e:
        logger.error(f"❌ PATCH /dispatches/{dispatch_id}/status failed: {e}", exc_info=True)
        raise PolicyError(ErrorCode.INTERNAL) from e
