"""
Audit event model - one immutable entry per accepted mutation.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, Dict, Any

from app.models.base import utc_now


class AuditEvent(BaseModel):
    id: Optional[str] = None
    actor_id: str
    action: str
    target_id: str
    outcome: str = "accepted"
    timestamp: datetime = Field(default_factory=utc_now)
    details: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)
