"""
Policy Evaluator - decides whether a principal may perform a mutation.

Every mutating operation asks authorize() first and touches storage only on
Allow. Decisions are all-or-nothing and every denial carries an ErrorCode.

Rules, first match wins:
 1. Missing actor -> Unauthorized; inactive actor -> ActorInactive
 2. Acting on oneself in a way that removes one's own access -> SelfActionForbidden
 3. global_admin -> Allow
 4. Non-global actor without a company -> CrossCompany (fail closed)
 5. create_report -> Allow
 6. Principal administration: same company, target strictly outranked
 7. Company management and audit reading: company_admin on its own company
 8. Report and dispatch work: operational role, same company once assigned;
    closing a report as resolved or recovered needs moderator or above
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
import logging

from app.core.errors import ErrorCode, PolicyError, DEFAULT_MESSAGES
from app.core.settings import settings
from app.models.principal import Principal, PrincipalStatus, Role, Company
from app.models.report import Report
from app.services.company_scope import CompanyScopeResolver, PrincipalLookup, ScopeKind
from app.services.role_hierarchy import RoleHierarchy

logger = logging.getLogger(__name__)

Target = Union[Principal, Report, Company, None]


class Action(str, Enum):
    CHANGE_ROLE = "change_role"
    CHANGE_STATUS = "change_status"
    ASSIGN_COMPANY = "assign_company"
    CREATE_PRINCIPAL = "create_principal"
    DELETE_PRINCIPAL = "delete_principal"
    MANAGE_COMPANY = "manage_company"
    CREATE_REPORT = "create_report"
    TRANSITION_REPORT = "transition_report"
    CLOSE_REPORT = "close_report"
    CREATE_DISPATCH = "create_dispatch"
    TRANSITION_DISPATCH = "transition_dispatch"
    VIEW_AUDIT = "view_audit"


PRINCIPAL_ACTIONS = frozenset({
    Action.CHANGE_ROLE,
    Action.CHANGE_STATUS,
    Action.ASSIGN_COMPANY,
    Action.CREATE_PRINCIPAL,
    Action.DELETE_PRINCIPAL,
})

# Actions that require the target to be strictly outranked
RANKED_ACTIONS = frozenset({
    Action.CHANGE_ROLE,
    Action.CHANGE_STATUS,
    Action.DELETE_PRINCIPAL,
    Action.ASSIGN_COMPANY,
})

INCIDENT_ACTIONS = frozenset({
    Action.TRANSITION_REPORT,
    Action.CLOSE_REPORT,
    Action.CREATE_DISPATCH,
    Action.TRANSITION_DISPATCH,
})


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[ErrorCode] = None
    message: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: ErrorCode, message: Optional[str] = None) -> "Decision":
        return cls(allowed=False, reason=reason, message=message or DEFAULT_MESSAGES[reason])

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise PolicyError(self.reason, self.message)


class PolicyEvaluator:
    """
    Stateless evaluator. All inputs are passed per call.

    Args:
        principal_lookup: Optional callable used to resolve a report's company
            from its assigned responder when the report has none stored.
        allow_all: Test-mode switch that approves every request from an
            active principal. Only accepted when the environment is "test".
        environment: Overrides settings.ENVIRONMENT (used by tests).
    """

    def __init__(
        self,
        principal_lookup: Optional[PrincipalLookup] = None,
        allow_all: bool = False,
        environment: Optional[str] = None
    ):
        environment = (environment or settings.ENVIRONMENT).lower()
        if allow_all and environment != "test":
            raise RuntimeError(
                f"Policy allow-all mode requested in environment '{environment}'. "
                "It may only be enabled when ENVIRONMENT=test."
            )
        if allow_all:
            logger.warning("⚠️ PolicyEvaluator constructed in ALLOW-ALL test mode")

        self.principal_lookup = principal_lookup
        self.allow_all = allow_all

    @classmethod
    def from_settings(cls, principal_lookup: Optional[PrincipalLookup] = None) -> "PolicyEvaluator":
        """Build the evaluator the application runs with (POLICY_ALLOW_ALL, ENVIRONMENT)."""
        return cls(principal_lookup=principal_lookup, allow_all=settings.POLICY_ALLOW_ALL)

    def authorize(
        self,
        actor: Optional[Principal],
        action: Action,
        target: Target = None,
        *,
        requested_role: Optional[Role] = None,
        requested_status: Optional[PrincipalStatus] = None,
        company_id: Optional[str] = None
    ) -> Decision:
        """
        Answer "may actor perform action on target?".

        Args:
            actor: Principal making the request (None if unauthenticated)
            action: Action being attempted
            target: Principal, Report, Company or None, depending on the action
            requested_role: New role for change_role
            requested_status: New status for change_status
            company_id: New company for assign_company

        Returns:
            Decision.allow() or Decision.deny(reason)
        """
        decision = self._evaluate(actor, action, target, requested_role, requested_status, company_id)

        actor_id = actor.id if actor else None
        target_id = getattr(target, "id", None)
        if decision.allowed:
            logger.debug(f"Allowed {action.value} by {actor_id} on {target_id}")
        else:
            logger.info(f"Denied {action.value} by {actor_id} on {target_id}: {decision.reason.value}")
        return decision

    def require(self, actor: Optional[Principal], action: Action, target: Target = None, **kwargs) -> None:
        """authorize() that raises PolicyError on denial."""
        self.authorize(actor, action, target, **kwargs).raise_if_denied()

    def _evaluate(
        self,
        actor: Optional[Principal],
        action: Action,
        target: Target,
        requested_role: Optional[Role],
        requested_status: Optional[PrincipalStatus],
        company_id: Optional[str]
    ) -> Decision:
        if actor is None:
            return Decision.deny(ErrorCode.UNAUTHORIZED)

        if actor.status != PrincipalStatus.ACTIVE:
            return Decision.deny(ErrorCode.ACTOR_INACTIVE)

        if self._is_self_lockout(actor, action, target, requested_role, requested_status):
            return Decision.deny(ErrorCode.SELF_ACTION_FORBIDDEN)

        if self.allow_all:
            logger.warning(f"⚠️ ALLOW-ALL test mode approved {action.value} by {actor.id}")
            return Decision.allow()

        if actor.role == Role.GLOBAL_ADMIN:
            return Decision.allow()

        if not CompanyScopeResolver.resolve_scope(actor).is_valid:
            return Decision.deny(
                ErrorCode.CROSS_COMPANY,
                "Your account is not assigned to a company"
            )

        if action == Action.CREATE_REPORT:
            return Decision.allow()

        if action in PRINCIPAL_ACTIONS:
            return self._evaluate_principal_action(actor, action, target, requested_role, company_id)

        # Reading a company's audit trail takes the same authority as managing it
        if action in (Action.MANAGE_COMPANY, Action.VIEW_AUDIT):
            return self._evaluate_company_action(actor, target)

        if action in INCIDENT_ACTIONS:
            return self._evaluate_incident_action(actor, action, target)

        return Decision.allow()

    @staticmethod
    def _is_self_lockout(
        actor: Principal,
        action: Action,
        target: Target,
        requested_role: Optional[Role],
        requested_status: Optional[PrincipalStatus]
    ) -> bool:
        if not isinstance(target, Principal) or target.id != actor.id:
            return False
        if action == Action.DELETE_PRINCIPAL:
            return True
        if action == Action.CHANGE_STATUS:
            return requested_status is not None and requested_status != PrincipalStatus.ACTIVE
        if action == Action.CHANGE_ROLE:
            return requested_role is not None and requested_role != actor.role
        return False

    def _evaluate_principal_action(
        self,
        actor: Principal,
        action: Action,
        target: Target,
        requested_role: Optional[Role],
        company_id: Optional[str]
    ) -> Decision:
        if not isinstance(target, Principal):
            return Decision.deny(ErrorCode.VALIDATION_ERROR, "A principal target is required")

        # Past the lockout guard a self role/status change keeps the current value
        if target.id == actor.id and action in (Action.CHANGE_ROLE, Action.CHANGE_STATUS):
            return Decision.allow()

        if action == Action.CREATE_PRINCIPAL:
            if target.company_id != actor.company_id and not CompanyScopeResolver.can_manage_company(actor, target.company_id):
                return Decision.deny(ErrorCode.CROSS_COMPANY)
        else:
            target_scope = CompanyScopeResolver.resolve_scope(target)
            # A global target is not a company matter; the rank rule refuses it below
            if target_scope.kind == ScopeKind.INVALID:
                return Decision.deny(ErrorCode.CROSS_COMPANY, "Target account is not assigned to a company")
            if target_scope.kind == ScopeKind.SCOPED and target_scope.company_id != actor.company_id:
                return Decision.deny(ErrorCode.CROSS_COMPANY)

        if action == Action.ASSIGN_COMPANY and company_id is not None and company_id != actor.company_id:
            return Decision.deny(ErrorCode.CROSS_COMPANY, "You can only assign principals to your own company")

        if not RoleHierarchy.is_at_least(actor.role, Role.MODERATOR):
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK)

        if action in RANKED_ACTIONS and RoleHierarchy.same_or_higher(target.role, actor.role):
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK, "You can only manage principals ranked below you")

        if action == Action.CREATE_PRINCIPAL and not RoleHierarchy.outranks(actor.role, target.role):
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK, "You can only create principals ranked below you")

        if requested_role is not None and not RoleHierarchy.outranks(actor.role, requested_role):
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK, "You can only grant roles ranked below your own")

        return Decision.allow()

    @staticmethod
    def _evaluate_company_action(actor: Principal, target: Target) -> Decision:
        # Creating or deleting companies (no existing target passed) is global-only
        if target is None:
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK)
        if not isinstance(target, Company):
            return Decision.deny(ErrorCode.VALIDATION_ERROR, "A company target is required")
        if target.id != actor.company_id:
            return Decision.deny(ErrorCode.CROSS_COMPANY)
        if not CompanyScopeResolver.can_manage_company(actor, target.id):
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK)
        return Decision.allow()

    def _evaluate_incident_action(self, actor: Principal, action: Action, target: Target) -> Decision:
        if not isinstance(target, Report):
            return Decision.deny(ErrorCode.VALIDATION_ERROR, "A report target is required")

        if actor.role not in RoleHierarchy.OPERATIONAL_ROLES:
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK)

        if action == Action.CREATE_DISPATCH and actor.role == Role.RESPONDER:
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK, "Responders cannot dispatch reports")

        report_company = CompanyScopeResolver.resolve_report_company(target, self.principal_lookup)
        if report_company is not None and report_company != actor.company_id:
            return Decision.deny(ErrorCode.CROSS_COMPANY)

        if actor.role == Role.RESPONDER and target.assigned_responder_id != actor.id:
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK, "Responders can only update reports assigned to them")

        if action == Action.CLOSE_REPORT and not RoleHierarchy.is_at_least(actor.role, Role.MODERATOR):
            return Decision.deny(ErrorCode.INSUFFICIENT_RANK, "Only moderators and above can close a report")

        return Decision.allow()
