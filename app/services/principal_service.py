"""
Principal Service - policy-gated administration of principals.

Principals are never hard-deleted: deletion suspends the account so its
audit history stays intact.
"""

from typing import Any, Dict, List, Optional
import logging

from app.config.firebase import get_store
from app.core.errors import ErrorCode, PolicyError, not_found, validation_error
from app.core.settings import settings
from app.models.audit import AuditEvent
from app.models.base import to_record, utc_now
from app.models.principal import (
    Company,
    CompanyStatus,
    Principal,
    PrincipalCreateRequest,
    PrincipalStatus,
    Role,
    COMPANIES_COLLECTION,
    PRINCIPALS_COLLECTION,
)
from app.services.audit_logger import AuditLogger
from app.services.company_scope import CompanyScopeResolver
from app.services.policy_evaluator import Action, PolicyEvaluator
from app.services.profile_cache import ProfileCache
from app.services.role_hierarchy import RoleHierarchy
from app.store.base import RecordStore, RecordNotFound, StoreConflict

logger = logging.getLogger(__name__)


class PrincipalService:
    """
    Service for principal lookup and administration.
    Owns the profile cache; every role/status/company write invalidates it.
    """

    def __init__(
        self,
        store: RecordStore,
        audit: AuditLogger,
        cache: Optional[ProfileCache] = None,
        evaluator: Optional[PolicyEvaluator] = None
    ):
        self.store = store
        self.audit = audit
        self.cache = cache or ProfileCache()
        self.evaluator = evaluator or PolicyEvaluator.from_settings(self.get_principal)

    def get_principal(self, principal_id: str) -> Optional[Principal]:
        """
        Get a principal by id, served from the profile cache when fresh.

        Returns:
            Principal or None if not found
        """
        cached = self.cache.get(principal_id)
        if cached is not None:
            return cached

        data = self.store.get(PRINCIPALS_COLLECTION, principal_id)
        if data is None:
            return None

        principal = Principal(**data)
        self.cache.set(principal)
        return principal

    def require_principal(self, principal_id: str) -> Principal:
        principal = self.get_principal(principal_id)
        if principal is None:
            raise not_found("Principal", principal_id)
        return principal

    def resolve_actor(self, actor_id: Optional[str]) -> Principal:
        """
        Resolve the principal making a request.

        Raises:
            PolicyError(Unauthorized): missing or unknown actor id
        """
        if not actor_id:
            raise PolicyError(ErrorCode.UNAUTHORIZED)
        actor = self.get_principal(actor_id)
        if actor is None:
            logger.warning(f"Request from unknown principal {actor_id}")
            raise PolicyError(ErrorCode.UNAUTHORIZED, "Unknown principal")
        return actor

    def list_principals(
        self,
        actor: Principal,
        company_id: Optional[str] = None,
        role: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100
    ) -> List[Principal]:
        """
        List principals visible to the actor.

        Non-global actors see only their own company and need at least
        moderator rank.
        """
        if actor.status != PrincipalStatus.ACTIVE:
            raise PolicyError(ErrorCode.ACTOR_INACTIVE)

        scope = CompanyScopeResolver.resolve_scope(actor)
        if not scope.is_global:
            if not scope.is_valid:
                raise PolicyError(ErrorCode.CROSS_COMPANY, "Your account is not assigned to a company")
            if not RoleHierarchy.is_at_least(actor.role, Role.MODERATOR):
                raise PolicyError(ErrorCode.INSUFFICIENT_RANK)
            if company_id and company_id != scope.company_id:
                raise PolicyError(ErrorCode.CROSS_COMPANY)
            company_id = scope.company_id

        filters: Dict[str, Any] = {}
        if company_id:
            filters["company_id"] = company_id
        if role:
            filters["role"] = RoleHierarchy.parse_role(role).value
        if status:
            filters["status"] = RoleHierarchy.parse_status(status).value

        principals = [Principal(**data) for data in self.store.query(PRINCIPALS_COLLECTION, filters, limit=limit)]
        principals.sort(key=lambda p: p.created_at, reverse=True)
        return principals

    def create_principal(self, actor: Principal, request: PrincipalCreateRequest) -> Principal:
        role = RoleHierarchy.parse_role(request.role)
        status = RoleHierarchy.parse_status(request.status)

        if role != Role.GLOBAL_ADMIN and not request.company_id:
            raise validation_error(f"Role '{role.value}' requires a company")
        if request.company_id:
            self._require_active_company(request.company_id)

        draft = Principal(
            id=request.id,
            role=role,
            company_id=request.company_id,
            status=status,
            email=request.email,
            full_name=request.full_name
        )
        self.evaluator.require(actor, Action.CREATE_PRINCIPAL, draft)

        try:
            saved = self.store.create(PRINCIPALS_COLLECTION, to_record(draft, exclude={"id"}), record_id=draft.id)
        except StoreConflict:
            raise PolicyError(ErrorCode.CONFLICT, f"Principal {draft.id} already exists")

        principal = Principal(**saved)
        self.audit.record(
            actor_id=actor.id,
            action=Action.CREATE_PRINCIPAL.value,
            target_id=principal.id,
            details={"role": role.value, "company_id": principal.company_id, "status": status.value}
        )
        logger.info(f"✅ Principal created: {principal.id} ({role.value}) by {actor.id}")
        return principal

    def change_role(self, actor: Principal, target_id: str, role_literal: str) -> Principal:
        new_role = RoleHierarchy.parse_role(role_literal)
        target = self.require_principal(target_id)

        self.evaluator.require(actor, Action.CHANGE_ROLE, target, requested_role=new_role)

        if new_role == target.role:
            return target
        if new_role != Role.GLOBAL_ADMIN and not target.company_id:
            raise validation_error(f"Assign {target.id} to a company before granting role '{new_role.value}'")

        return self._apply(
            actor,
            target,
            Action.CHANGE_ROLE,
            {"role": new_role.value},
            details={"from": target.role.value, "to": new_role.value}
        )

    def change_status(self, actor: Principal, target_id: str, status_literal: str) -> Principal:
        new_status = RoleHierarchy.parse_status(status_literal)
        target = self.require_principal(target_id)

        self.evaluator.require(actor, Action.CHANGE_STATUS, target, requested_status=new_status)

        if new_status == target.status:
            return target

        return self._apply(
            actor,
            target,
            Action.CHANGE_STATUS,
            {"status": new_status.value},
            details={"from": target.status.value, "to": new_status.value}
        )

    def assign_company(self, actor: Principal, target_id: str, company_id: str) -> Principal:
        target = self.require_principal(target_id)

        self.evaluator.require(actor, Action.ASSIGN_COMPANY, target, company_id=company_id)
        self._require_active_company(company_id)

        if target.company_id == company_id:
            return target

        return self._apply(
            actor,
            target,
            Action.ASSIGN_COMPANY,
            {"company_id": company_id},
            details={"from": target.company_id, "to": company_id}
        )

    def delete_principal(self, actor: Principal, target_id: str) -> Principal:
        """Soft delete: the principal is suspended, never removed."""
        target = self.require_principal(target_id)

        self.evaluator.require(actor, Action.DELETE_PRINCIPAL, target)

        if target.status == PrincipalStatus.SUSPENDED:
            return target

        return self._apply(
            actor,
            target,
            Action.DELETE_PRINCIPAL,
            {"status": PrincipalStatus.SUSPENDED.value},
            details={"from": target.status.value, "to": PrincipalStatus.SUSPENDED.value}
        )

    def list_audit_events(
        self,
        actor: Principal,
        target_id: Optional[str] = None,
        action: Optional[str] = None,
        actor_id: Optional[str] = None,
        limit: int = 100
    ) -> List[AuditEvent]:
        """
        Read the audit trail, newest first.

        Global admins see every event. A company admin sees the events
        recorded by principals of its own company.
        """
        company = None
        if not CompanyScopeResolver.resolve_scope(actor).is_global and actor.company_id:
            data = self.store.get(COMPANIES_COLLECTION, actor.company_id)
            if data is not None:
                company = Company(**data)

        self.evaluator.require(actor, Action.VIEW_AUDIT, company)

        if company is None:
            return self.audit.list_events(target_id=target_id, action=action, actor_id=actor_id, limit=limit)

        members = {
            data["id"]
            for data in self.store.query(PRINCIPALS_COLLECTION, {"company_id": company.id})
        }
        events = self.audit.list_events(target_id=target_id, action=action, actor_id=actor_id)
        return [event for event in events if event.actor_id in members][:limit]

    def _require_active_company(self, company_id: str) -> Company:
        data = self.store.get(COMPANIES_COLLECTION, company_id)
        if data is None:
            raise not_found("Company", company_id)
        company = Company(**data)
        if company.status != CompanyStatus.ACTIVE:
            raise validation_error(f"Company {company_id} is {company.status.value}")
        return company

    def _apply(
        self,
        actor: Principal,
        target: Principal,
        action: Action,
        changes: Dict[str, Any],
        details: Optional[Dict[str, Any]] = None
    ) -> Principal:
        expected = {"updated_at": target.updated_at}
        expected.update({field: to_record(target)[field] for field in changes})

        try:
            updated = self.store.update_if_unchanged(
                PRINCIPALS_COLLECTION,
                target.id,
                expected=expected,
                changes={**changes, "updated_at": utc_now()}
            )
        except StoreConflict:
            raise PolicyError(ErrorCode.CONFLICT)
        except RecordNotFound:
            raise not_found("Principal", target.id)
        finally:
            self.cache.invalidate(target.id)

        principal = Principal(**updated)
        self.audit.record(actor_id=actor.id, action=action.value, target_id=target.id, details=details)
        logger.info(f"✅ {actor.id} applied {action.value} to principal {target.id}: {details}")
        return principal


# Global service instance (singleton pattern)
_principal_service = None


def get_principal_service() -> PrincipalService:
    """
    Get or create PrincipalService singleton instance.

    Returns:
        PrincipalService: The global principal service instance
    """
    global _principal_service
    if _principal_service is None:
        store = get_store()
        _principal_service = PrincipalService(
            store=store,
            audit=AuditLogger(store),
            cache=ProfileCache(
                max_entries=settings.PROFILE_CACHE_MAX_ENTRIES,
                ttl_seconds=settings.PROFILE_CACHE_TTL_SECONDS
            )
        )
    return _principal_service
