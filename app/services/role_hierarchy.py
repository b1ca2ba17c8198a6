"""
Role Hierarchy - static table of roles and their relative power.

global_admin > company_admin > moderator > controller = responder > user

Pure lookups over a constant table. No I/O.
"""

from typing import Dict, FrozenSet, Union

from app.core.errors import validation_error
from app.models.principal import Role, PrincipalStatus


class RoleHierarchy:
    """
    Single place every role comparison goes through.
    """

    RANKS: Dict[Role, int] = {
        Role.GLOBAL_ADMIN: 5,
        Role.COMPANY_ADMIN: 4,
        Role.MODERATOR: 3,
        Role.CONTROLLER: 2,
        Role.RESPONDER: 2,
        Role.USER: 1,
    }

    # Roles that work incidents (reports and dispatches) inside a company
    OPERATIONAL_ROLES: FrozenSet[Role] = frozenset({
        Role.COMPANY_ADMIN,
        Role.MODERATOR,
        Role.CONTROLLER,
        Role.RESPONDER,
    })

    @classmethod
    def rank(cls, role: Role) -> int:
        return cls.RANKS[role]

    @classmethod
    def outranks(cls, a: Role, b: Role) -> bool:
        """True if role a holds strictly more authority than role b."""
        return cls.RANKS[a] > cls.RANKS[b]

    @classmethod
    def same_or_higher(cls, a: Role, b: Role) -> bool:
        return cls.RANKS[a] >= cls.RANKS[b]

    @classmethod
    def is_at_least(cls, role: Role, minimum: Role) -> bool:
        return cls.same_or_higher(role, minimum)

    @staticmethod
    def parse_role(literal: Union[str, Role]) -> Role:
        """
        Validate a role literal coming from a request.

        Legacy spellings ("admin", "administrator", "OFFICER", ...) are refused
        rather than mapped.

        Raises:
            PolicyError(ValidationError): unknown literal
        """
        if isinstance(literal, Role):
            return literal
        try:
            return Role(literal)
        except ValueError:
            allowed = ", ".join(role.value for role in Role)
            raise validation_error(f"Unknown role '{literal}'. Allowed: {allowed}")

    @staticmethod
    def parse_status(literal: Union[str, PrincipalStatus]) -> PrincipalStatus:
        if isinstance(literal, PrincipalStatus):
            return literal
        try:
            return PrincipalStatus(literal)
        except ValueError:
            allowed = ", ".join(status.value for status in PrincipalStatus)
            raise validation_error(f"Unknown principal status '{literal}'. Allowed: {allowed}")
