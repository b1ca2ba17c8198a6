"""
Company service - tenant records managed by global and company admins.
"""

from typing import Any, Dict, List, Optional, Union
import logging

from app.core.errors import ErrorCode, PolicyError, not_found, validation_error
from app.models.base import to_record, utc_now
from app.models.principal import (
    Company,
    CompanyCreateRequest,
    CompanyStatus,
    CompanyUpdateRequest,
    Principal,
    COMPANIES_COLLECTION,
    PRINCIPALS_COLLECTION,
)
from app.services.company_scope import CompanyScopeResolver
from app.services.policy_evaluator import Action
from app.services.principal_service import PrincipalService, get_principal_service
from app.store.base import RecordStore, RecordNotFound, StoreConflict

logger = logging.getLogger(__name__)


class CompanyService:

    def __init__(self, store: RecordStore, principals: PrincipalService):
        self.store = store
        self.principals = principals
        self.evaluator = principals.evaluator
        self.audit = principals.audit

    @staticmethod
    def parse_status(literal: Union[str, CompanyStatus]) -> CompanyStatus:
        if isinstance(literal, CompanyStatus):
            return literal
        try:
            return CompanyStatus(literal)
        except ValueError:
            allowed = ", ".join(status.value for status in CompanyStatus)
            raise validation_error(f"Unknown company status '{literal}'. Allowed: {allowed}")

    def get_company(self, company_id: str) -> Company:
        data = self.store.get(COMPANIES_COLLECTION, company_id)
        if data is None:
            raise not_found("Company", company_id)
        return Company(**data)

    def list_companies(self, actor: Principal) -> List[Company]:
        """Global actors see every company, everyone else only their own."""
        if not actor.is_active:
            raise PolicyError(ErrorCode.ACTOR_INACTIVE)

        scope = CompanyScopeResolver.resolve_scope(actor)
        if scope.is_global:
            companies = [Company(**data) for data in self.store.query(COMPANIES_COLLECTION)]
            companies.sort(key=lambda c: c.name.lower())
            return companies

        if not scope.is_valid:
            return []
        data = self.store.get(COMPANIES_COLLECTION, scope.company_id)
        return [Company(**data)] if data else []

    def create_company(self, actor: Principal, request: CompanyCreateRequest) -> Company:
        status = self.parse_status(request.status)
        name = request.name.strip()
        if not name:
            raise validation_error("Company name must not be blank")
        self.evaluator.require(actor, Action.MANAGE_COMPANY, None)

        draft = Company(id="", name=name, status=status)
        saved = self.store.create(COMPANIES_COLLECTION, to_record(draft, exclude={"id"}))
        company = Company(**saved)

        self.audit.record(
            actor_id=actor.id,
            action="create_company",
            target_id=company.id,
            details={"name": company.name, "status": status.value}
        )
        logger.info(f"✅ Company created: {company.id} ({company.name}) by {actor.id}")
        return company

    def update_company(self, actor: Principal, company_id: str, request: CompanyUpdateRequest) -> Company:
        """
        Rename a company or change its status.

        Raises:
            PolicyError: ValidationError, NotFound, any authorization denial, Conflict
        """
        changes: Dict[str, Any] = {}
        if request.name is not None:
            if not request.name.strip():
                raise validation_error("Company name must not be blank")
            changes["name"] = request.name.strip()
        if request.status is not None:
            changes["status"] = self.parse_status(request.status).value

        company = self.get_company(company_id)
        self.evaluator.require(actor, Action.MANAGE_COMPANY, company)

        current = to_record(company)
        changes = {field: value for field, value in changes.items() if current[field] != value}
        if not changes:
            return company

        try:
            updated = self.store.update_if_unchanged(
                COMPANIES_COLLECTION,
                company.id,
                expected={"updated_at": company.updated_at},
                changes={**changes, "updated_at": utc_now()}
            )
        except StoreConflict:
            raise PolicyError(ErrorCode.CONFLICT)
        except RecordNotFound:
            raise not_found("Company", company.id)

        self.audit.record(
            actor_id=actor.id,
            action="update_company",
            target_id=company.id,
            details={field: {"from": current[field], "to": value} for field, value in changes.items()}
        )
        logger.info(f"✅ Company {company.id} updated by {actor.id}: {sorted(changes)}")
        return Company(**updated)

    def delete_company(self, actor: Principal, company_id: str) -> None:
        """Delete a company that no principal references any more."""
        self.evaluator.require(actor, Action.MANAGE_COMPANY, None)
        company = self.get_company(company_id)

        members = self.store.query(PRINCIPALS_COLLECTION, {"company_id": company.id}, limit=1)
        if members:
            raise validation_error(
                f"Company {company.id} still has principals assigned; reassign or remove them first"
            )

        try:
            self.store.delete(COMPANIES_COLLECTION, company.id)
        except RecordNotFound:
            raise not_found("Company", company.id)

        self.audit.record(
            actor_id=actor.id,
            action="delete_company",
            target_id=company.id,
            details={"name": company.name}
        )
        logger.info(f"Company {company.id} ({company.name}) deleted by {actor.id}")


# Global service instance (singleton pattern)
_company_service: Optional[CompanyService] = None


def get_company_service() -> CompanyService:
    global _company_service
    if _company_service is None:
        principals = get_principal_service()
        _company_service = CompanyService(principals.store, principals)
    return _company_service
