"""
Pydantic models for citizen reports (vehicle alerts and crime reports).
These models handle validation for report submission and responses.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List, Dict
from enum import Enum

from app.models.base import utc_now

REPORTS_COLLECTION = "reports"


class ReportKind(str, Enum):
    VEHICLE = "vehicle"
    CRIME = "crime"


class Severity(str, Enum):
    """Shared by report severity and dispatch priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReportStatus(str, Enum):
    """
    Report lifecycle states.

    pending -> active -> dispatched -> en_route -> on_scene,
    ending in one of resolved, recovered, rejected.
    """
    PENDING = "pending"
    ACTIVE = "active"
    DISPATCHED = "dispatched"
    EN_ROUTE = "en_route"
    ON_SCENE = "on_scene"
    RESOLVED = "resolved"
    RECOVERED = "recovered"
    REJECTED = "rejected"


class Report(BaseModel):
    """
    A citizen-filed incident record.
    company_id stays null (community-wide) until a dispatch assigns it.
    """
    id: str = Field(..., description="Store document ID")
    kind: ReportKind
    severity: Severity = Field(default=Severity.MEDIUM)
    status: ReportStatus = Field(default=ReportStatus.PENDING)
    reporter_id: str
    company_id: Optional[str] = None
    assigned_responder_id: Optional[str] = None
    # Id of the dispatch record currently holding the report; cleared on completion
    active_dispatch_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    # Vehicle alerts
    license_plate: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_color: Optional[str] = None
    # Crime reports
    crime_type: Optional[str] = None
    status_history: List[Dict] = Field(default_factory=list, description="Status transition history")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ReportCreate(BaseModel):
    """
    Model for creating a new report (incoming POST request).
    Literals are validated by the service so unknown values map to ValidationError.
    """
    kind: str = Field(..., description="vehicle | crime")
    severity: str = Field(default="medium", description="low | medium | high | critical")
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=500)
    license_plate: Optional[str] = Field(None, max_length=20)
    vehicle_make: Optional[str] = Field(None, max_length=100)
    vehicle_model: Optional[str] = Field(None, max_length=100)
    vehicle_color: Optional[str] = Field(None, max_length=50)
    crime_type: Optional[str] = Field(None, max_length=100)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "kind": "vehicle",
                "severity": "high",
                "title": "White hatchback stolen outside the mall",
                "location": "Main Road, Parkview",
                "license_plate": "CA 123-456",
                "vehicle_make": "Toyota",
                "vehicle_model": "Yaris",
                "vehicle_color": "White",
            }
        },
        extra="ignore",
    )


class StatusUpdateRequest(BaseModel):
    """Request to move a report or dispatch record to a new status."""
    status: str = Field(..., description="Target status literal")
    note: Optional[str] = Field(None, max_length=500)


class SeverityUpdateRequest(BaseModel):
    severity: str = Field(..., description="low | medium | high | critical")
