"""
Admin endpoints - principal and company administration.

SCOPE OF ADMIN:
✅ Register principals under a role and company
✅ Change role, status and company of principals ranked below the caller
✅ Suspend (soft delete) principals
✅ Create, rename, activate/deactivate companies
✅ Read the audit trail (global, or own company for company admins)

❌ NOT act on one's own account in a way that removes one's own access
❌ NOT reach into another company (global admins excepted)
❌ NOT hard-delete principals; their audit trail is kept
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.core.errors import ErrorCode, PolicyError
from app.models.principal import (
    CompanyAssignmentRequest,
    CompanyCreateRequest,
    CompanyUpdateRequest,
    Principal,
    PrincipalCreateRequest,
    PrincipalStatusChangeRequest,
    RoleChangeRequest,
)
from app.services.company_service import CompanyService, get_company_service
from app.services.principal_service import PrincipalService, get_principal_service
from app.utils.security import get_current_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def _internal_error(route: str, exc: Exception) -> PolicyError:
    logger.error(f"❌ {route} failed: {exc}", exc_info=True)
    return PolicyError(ErrorCode.INTERNAL)


# Principals

@router.post("/principals", status_code=status.HTTP_201_CREATED)
async def create_principal(
    request: PrincipalCreateRequest,
    actor: Principal = Depends(get_current_actor),
    service: PrincipalService = Depends(get_principal_service)
):
    """
    Register a principal.

    The new principal's role must rank strictly below the caller's, and
    non-global callers can only register into their own company.

    Raises:
        400: Unknown role/status literal or missing company
        403: InsufficientRank, CrossCompany
        404: Company not found
        409: Principal id already registered
    """
    try:
        principal = service.create_principal(actor, request)
        return {
            "success": True,
            "message": f"Principal {principal.id} created",
            "principal": principal
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error("POST /admin/principals", e) from e


@router.get("/principals")
async def list_principals(
    company_id: Optional[str] = Query(None, description="Filter by company (global admins only)"),
    role: Optional[str] = Query(None, description="Filter by role"),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    actor: Principal = Depends(get_current_actor),
    service: PrincipalService = Depends(get_principal_service)
):
    principals = service.list_principals(actor, company_id=company_id, role=role, status=status_filter, limit=limit)
    return {
        "success": True,
        "count": len(principals),
        "principals": principals
    }


@router.patch("/principals/{principal_id}/role")
async def change_principal_role(
    principal_id: str,
    request: RoleChangeRequest,
    actor: Principal = Depends(get_current_actor),
    service: PrincipalService = Depends(get_principal_service)
):
    """
    Change a principal's role.

    The caller must outrank both the principal's current role and the
    requested one. Changing one's own role is refused.
    """
    try:
        principal = service.change_role(actor, principal_id, request.role)
        return {
            "success": True,
            "message": f"Role updated to {principal.role.value}",
            "principal": principal
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error(f"PATCH /admin/principals/{principal_id}/role", e) from e


@router.patch("/principals/{principal_id}/status")
async def change_principal_status(
    principal_id: str,
    request: PrincipalStatusChangeRequest,
    actor: Principal = Depends(get_current_actor),
    service: PrincipalService = Depends(get_principal_service)
):
    try:
        principal = service.change_status(actor, principal_id, request.status)
        return {
            "success": True,
            "message": f"Status updated to {principal.status.value}",
            "principal": principal
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error(f"PATCH /admin/principals/{principal_id}/status", e) from e


@router.patch("/principals/{principal_id}/company")
async def assign_principal_company(
    principal_id: str,
    request: CompanyAssignmentRequest,
    actor: Principal = Depends(get_current_actor),
    service: PrincipalService = Depends(get_principal_service)
):
    try:
        principal = service.assign_company(actor, principal_id, request.company_id)
        return {
            "success": True,
            "message": f"Assigned to company {principal.company_id}",
            "principal": principal
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error(f"PATCH /admin/principals/{principal_id}/company", e) from e


@router.delete("/principals/{principal_id}")
async def delete_principal(
    principal_id: str,
    actor: Principal = Depends(get_current_actor),
    service: PrincipalService = Depends(get_principal_service)
):
    """Suspend a principal. The record and its audit history are kept."""
    try:
        principal = service.delete_principal(actor, principal_id)
        return {
            "success": True,
            "message": f"Principal {principal.id} suspended",
            "principal": principal
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error(f"DELETE /admin/principals/{principal_id}", e) from e


# Companies

@router.post("/companies", status_code=status.HTTP_201_CREATED)
async def create_company(
    request: CompanyCreateRequest,
    actor: Principal = Depends(get_current_actor),
    service: CompanyService = Depends(get_company_service)
):
    """Create a company. Global admins only."""
    try:
        company = service.create_company(actor, request)
        return {
            "success": True,
            "message": f"Company {company.name} created",
            "company": company
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error("POST /admin/companies", e) from e


@router.get("/companies")
async def list_companies(
    actor: Principal = Depends(get_current_actor),
    service: CompanyService = Depends(get_company_service)
):
    companies = service.list_companies(actor)
    return {
        "success": True,
        "count": len(companies),
        "companies": companies
    }


@router.patch("/companies/{company_id}")
async def update_company(
    company_id: str,
    request: CompanyUpdateRequest,
    actor: Principal = Depends(get_current_actor),
    service: CompanyService = Depends(get_company_service)
):
    """
    Rename a company or change its status.
    Company admins may only update their own company.
    """
    try:
        company = service.update_company(actor, company_id, request)
        return {
            "success": True,
            "message": f"Company {company.id} updated",
            "company": company
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error(f"PATCH /admin/companies/{company_id}", e) from e


@router.delete("/companies/{company_id}")
async def delete_company(
    company_id: str,
    actor: Principal = Depends(get_current_actor),
    service: CompanyService = Depends(get_company_service)
):
    """
    Delete a company. Global admins only, and only once no principal
    belongs to it.
    """
    try:
        service.delete_company(actor, company_id)
        return {
            "success": True,
            "message": f"Company {company_id} deleted"
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error(f"DELETE /admin/companies/{company_id}", e) from e


# Audit trail

@router.get("/audit")
async def list_audit_events(
    target_id: Optional[str] = Query(None, description="Only events on this principal, company, report or dispatch"),
    action: Optional[str] = Query(None, description="Only events of this action, e.g. change_role"),
    actor_id: Optional[str] = Query(None, description="Only events recorded by this principal"),
    limit: int = Query(100, ge=1, le=1000),
    actor: Principal = Depends(get_current_actor),
    service: PrincipalService = Depends(get_principal_service)
):
    """
    Read the audit trail, newest first.

    Global admins see every event; company admins see events recorded by
    principals of their own company.

    Raises:
        403: InsufficientRank, CrossCompany
    """
    try:
        events = service.list_audit_events(
            actor, target_id=target_id, action=action, actor_id=actor_id, limit=limit
        )
        return {
            "success": True,
            "count": len(events),
            "events": events
        }
    except PolicyError:
        raise
    except Exception as e:
        raise _internal_error("GET /admin/audit", e) from e
