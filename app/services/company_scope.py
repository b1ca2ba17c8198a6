"""
Company Scope Resolver - is an actor's authority global or tied to one company?

A principal with no company is global only when it is a global_admin. Any
other role without a company is a data-entry defect and resolves to an
INVALID scope, which callers treat as a denial.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from app.models.principal import Principal, Role
from app.models.report import Report

PrincipalLookup = Callable[[str], Optional[Principal]]


class ScopeKind(str, Enum):
    GLOBAL = "global"
    SCOPED = "scoped"
    INVALID = "invalid"


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    company_id: Optional[str] = None

    @classmethod
    def global_(cls) -> "Scope":
        return cls(ScopeKind.GLOBAL)

    @classmethod
    def scoped(cls, company_id: str) -> "Scope":
        return cls(ScopeKind.SCOPED, company_id)

    @classmethod
    def invalid(cls) -> "Scope":
        return cls(ScopeKind.INVALID)

    @property
    def is_global(self) -> bool:
        return self.kind == ScopeKind.GLOBAL

    @property
    def is_valid(self) -> bool:
        return self.kind != ScopeKind.INVALID


class CompanyScopeResolver:

    @staticmethod
    def resolve_scope(principal: Principal) -> Scope:
        if principal.role == Role.GLOBAL_ADMIN:
            return Scope.global_()
        if not principal.company_id:
            return Scope.invalid()
        return Scope.scoped(principal.company_id)

    @classmethod
    def same_scope(cls, a: Principal, b: Principal) -> bool:
        """
        True when both principals are scoped to the same company.
        Global scope never matches a company scope; global authority is
        decided by the policy evaluator.
        """
        scope_a = cls.resolve_scope(a)
        scope_b = cls.resolve_scope(b)
        if not (scope_a.is_valid and scope_b.is_valid):
            return False
        if scope_a.is_global or scope_b.is_global:
            return scope_a.is_global and scope_b.is_global
        return scope_a.company_id == scope_b.company_id

    @staticmethod
    def resolve_report_company(report: Report, lookup: Optional[PrincipalLookup] = None) -> Optional[str]:
        """
        Effective company of a report.

        Stored company_id wins; otherwise the company owning the assigned
        responder; otherwise None (community-wide, unscoped).
        """
        if report.company_id:
            return report.company_id
        if report.assigned_responder_id and lookup is not None:
            responder = lookup(report.assigned_responder_id)
            if responder is not None and responder.company_id:
                return responder.company_id
        return None

    @classmethod
    def can_manage_company(cls, actor: Principal, company_id: Optional[str]) -> bool:
        """Global admins manage every company; company admins manage only their own."""
        scope = cls.resolve_scope(actor)
        if scope.is_global:
            return True
        if not scope.is_valid or company_id is None:
            return False
        return actor.role == Role.COMPANY_ADMIN and scope.company_id == company_id
