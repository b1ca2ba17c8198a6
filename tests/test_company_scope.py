from app.models.principal import Role
from app.models.report import Report, ReportKind
from app.services.company_scope import CompanyScopeResolver, ScopeKind

from tests.conftest import make_principal


def _report(**overrides) -> Report:
    data = {"id": "R", "kind": ReportKind.CRIME, "reporter_id": "U", "title": "Break-in"}
    data.update(overrides)
    return Report(**data)


def test_global_admin_is_global_regardless_of_company():
    assert CompanyScopeResolver.resolve_scope(make_principal("G", Role.GLOBAL_ADMIN)).is_global
    assert CompanyScopeResolver.resolve_scope(make_principal("G", Role.GLOBAL_ADMIN, "C1")).is_global


def test_scoped_principal():
    scope = CompanyScopeResolver.resolve_scope(make_principal("M", Role.MODERATOR, "C1"))
    assert scope.kind == ScopeKind.SCOPED
    assert scope.company_id == "C1"


def test_non_global_without_company_is_invalid():
    scope = CompanyScopeResolver.resolve_scope(make_principal("M", Role.MODERATOR, None))
    assert scope.kind == ScopeKind.INVALID
    assert not scope.is_valid


def test_same_scope():
    m1 = make_principal("M", Role.MODERATOR, "C1")
    k1 = make_principal("K", Role.CONTROLLER, "C1")
    m2 = make_principal("M2", Role.MODERATOR, "C2")
    orphan = make_principal("O", Role.USER, None)
    g = make_principal("G", Role.GLOBAL_ADMIN)

    assert CompanyScopeResolver.same_scope(m1, k1)
    assert not CompanyScopeResolver.same_scope(m1, m2)
    assert not CompanyScopeResolver.same_scope(m1, orphan)
    assert not CompanyScopeResolver.same_scope(m1, g)
    assert CompanyScopeResolver.same_scope(g, make_principal("G2", Role.GLOBAL_ADMIN))


def test_report_company_prefers_stored_value():
    lookup = {"X": make_principal("X", Role.RESPONDER, "C2")}.get
    report = _report(company_id="C1", assigned_responder_id="X")
    assert CompanyScopeResolver.resolve_report_company(report, lookup) == "C1"


def test_report_company_falls_back_to_assigned_responder():
    lookup = {"X": make_principal("X", Role.RESPONDER, "C2")}.get
    report = _report(assigned_responder_id="X")
    assert CompanyScopeResolver.resolve_report_company(report, lookup) == "C2"


def test_unassigned_report_is_unscoped():
    assert CompanyScopeResolver.resolve_report_company(_report()) is None
    assert CompanyScopeResolver.resolve_report_company(_report(assigned_responder_id="ghost"), lambda _: None) is None


def test_can_manage_company():
    assert CompanyScopeResolver.can_manage_company(make_principal("G", Role.GLOBAL_ADMIN), "C9")
    assert CompanyScopeResolver.can_manage_company(make_principal("A1", Role.COMPANY_ADMIN, "C1"), "C1")
    assert not CompanyScopeResolver.can_manage_company(make_principal("A1", Role.COMPANY_ADMIN, "C1"), "C2")
    assert not CompanyScopeResolver.can_manage_company(make_principal("M", Role.MODERATOR, "C1"), "C1")
