import pytest

from app.core.errors import ErrorCode, PolicyError
from app.models.principal import PrincipalStatus, Role
from app.services.role_hierarchy import RoleHierarchy


def test_ordering_top_to_bottom():
    ordered = [Role.GLOBAL_ADMIN, Role.COMPANY_ADMIN, Role.MODERATOR, Role.CONTROLLER, Role.USER]
    for higher, lower in zip(ordered, ordered[1:]):
        assert RoleHierarchy.outranks(higher, lower)
        assert not RoleHierarchy.outranks(lower, higher)


def test_controller_and_responder_share_a_rank():
    assert RoleHierarchy.rank(Role.CONTROLLER) == RoleHierarchy.rank(Role.RESPONDER)
    assert not RoleHierarchy.outranks(Role.CONTROLLER, Role.RESPONDER)
    assert not RoleHierarchy.outranks(Role.RESPONDER, Role.CONTROLLER)
    assert RoleHierarchy.same_or_higher(Role.RESPONDER, Role.CONTROLLER)


def test_no_role_outranks_itself():
    for role in Role:
        assert not RoleHierarchy.outranks(role, role)
        assert RoleHierarchy.is_at_least(role, role)


def test_every_role_has_a_rank():
    assert set(RoleHierarchy.RANKS) == set(Role)


def test_operational_roles_exclude_user_and_global_admin():
    assert Role.USER not in RoleHierarchy.OPERATIONAL_ROLES
    assert Role.GLOBAL_ADMIN not in RoleHierarchy.OPERATIONAL_ROLES
    assert Role.RESPONDER in RoleHierarchy.OPERATIONAL_ROLES


def test_parse_role_accepts_known_literals():
    assert RoleHierarchy.parse_role("moderator") == Role.MODERATOR
    assert RoleHierarchy.parse_role(Role.USER) == Role.USER


@pytest.mark.parametrize("literal", ["admin", "administrator", "ADMIN", "OFFICER", "Moderator", ""])
def test_parse_role_refuses_legacy_and_unknown_literals(literal):
    with pytest.raises(PolicyError) as exc_info:
        RoleHierarchy.parse_role(literal)
    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
    assert exc_info.value.status_code == 400


def test_parse_status():
    assert RoleHierarchy.parse_status("suspended") == PrincipalStatus.SUSPENDED
    with pytest.raises(PolicyError) as exc_info:
        RoleHierarchy.parse_status("banned")
    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
