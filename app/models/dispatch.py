"""
Dispatch record models - operational assignment of a report to a responder.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from enum import Enum

from app.models.base import utc_now
from app.models.report import Severity

DISPATCHES_COLLECTION = "dispatch_records"


class DispatchStatus(str, Enum):
    """Strictly linear: pending -> dispatched -> en_route -> on_scene -> completed."""
    PENDING = "pending"
    DISPATCHED = "dispatched"
    EN_ROUTE = "en_route"
    ON_SCENE = "on_scene"
    COMPLETED = "completed"


class DispatchRecord(BaseModel):
    id: str
    report_id: str
    assigned_to: str = Field(..., description="Responder/team id")
    priority: Severity = Field(default=Severity.MEDIUM)
    status: DispatchStatus = Field(default=DispatchStatus.PENDING)
    notes: Optional[str] = None
    dispatched_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status != DispatchStatus.COMPLETED


class DispatchRequest(BaseModel):
    """Request to assign a report to a responder."""
    responder_id: str = Field(..., min_length=1)
    priority: str = Field(default="medium", description="low | medium | high | critical")
    notes: Optional[str] = Field(None, max_length=1000)
