"""
Principal and company models for authorization and administration.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from enum import Enum

from app.models.base import utc_now

PRINCIPALS_COLLECTION = "principals"
COMPANIES_COLLECTION = "companies"


class Role(str, Enum):
    """
    Closed role vocabulary, highest authority first.
    Relative power lives in RoleHierarchy, not in the member order.
    """
    GLOBAL_ADMIN = "global_admin"
    COMPANY_ADMIN = "company_admin"
    MODERATOR = "moderator"
    CONTROLLER = "controller"
    RESPONDER = "responder"
    USER = "user"


class PrincipalStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"  # Terminal "removed" state, record is kept for audit


class CompanyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class Principal(BaseModel):
    """Any authenticated actor the policy evaluates."""
    id: str = Field(..., description="Principal identifier (identity provider subject)")
    role: Role = Field(default=Role.USER)
    company_id: Optional[str] = Field(None, description="Owning company; null means global scope")
    status: PrincipalStatus = Field(default=PrincipalStatus.PENDING)
    email: Optional[str] = None
    full_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == PrincipalStatus.ACTIVE


class Company(BaseModel):
    """A tenant boundary scoping visibility and authority for non-global roles."""
    id: str
    name: str = Field(..., min_length=1, max_length=200)
    status: CompanyStatus = Field(default=CompanyStatus.ACTIVE)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# Request models
class PrincipalCreateRequest(BaseModel):
    """Register a principal under an explicit role and company."""
    id: str = Field(..., min_length=1, max_length=128, description="Identity provider subject id")
    role: str = Field(..., description="Role literal")
    company_id: Optional[str] = Field(None, description="Company the principal belongs to")
    status: str = Field(default="pending", description="Initial status literal")
    email: Optional[str] = Field(None, max_length=320)
    full_name: Optional[str] = Field(None, max_length=200)


class RoleChangeRequest(BaseModel):
    role: str = Field(..., description="New role literal")


class PrincipalStatusChangeRequest(BaseModel):
    status: str = Field(..., description="New status literal")


class CompanyAssignmentRequest(BaseModel):
    company_id: str = Field(..., min_length=1, description="Target company id")


class CompanyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    status: str = Field(default="active")


class CompanyUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[str] = None
