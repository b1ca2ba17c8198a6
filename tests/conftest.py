import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("USE_MOCK_DB", "true")

from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.models.base import to_record
from app.models.principal import (
    Company,
    Principal,
    PrincipalStatus,
    Role,
    COMPANIES_COLLECTION,
    PRINCIPALS_COLLECTION,
)
from app.models.report import Report, ReportCreate
from app.services.audit_logger import AuditLogger
from app.services.company_service import CompanyService, get_company_service
from app.services.principal_service import PrincipalService, get_principal_service
from app.services.profile_cache import ProfileCache
from app.services.report_service import ReportService, get_report_service
from app.store.memory_store import InMemoryRecordStore

C1 = "C1"
C2 = "C2"

# id -> (role, company)
PEOPLE = {
    "G": (Role.GLOBAL_ADMIN, None),
    "A1": (Role.COMPANY_ADMIN, C1),
    "M": (Role.MODERATOR, C1),
    "K": (Role.CONTROLLER, C1),
    "X": (Role.RESPONDER, C1),
    "X2": (Role.RESPONDER, C1),
    "U": (Role.USER, C1),
    "A2": (Role.COMPANY_ADMIN, C2),
    "M2": (Role.MODERATOR, C2),
    "Y": (Role.RESPONDER, C2),
}


def make_principal(
    principal_id: str,
    role: Role,
    company_id: Optional[str] = None,
    status: PrincipalStatus = PrincipalStatus.ACTIVE
) -> Principal:
    return Principal(id=principal_id, role=role, company_id=company_id, status=status)


def seed_principal(store, principal: Principal) -> Principal:
    store.create(PRINCIPALS_COLLECTION, to_record(principal, exclude={"id"}), record_id=principal.id)
    return principal


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def audit(store):
    return AuditLogger(store)


@pytest.fixture
def cache():
    return ProfileCache(max_entries=64, ttl_seconds=300.0)


@pytest.fixture
def principal_service(store, audit, cache):
    return PrincipalService(store, audit, cache=cache)


@pytest.fixture
def company_service(store, principal_service):
    return CompanyService(store, principal_service)


@pytest.fixture
def report_service(store, principal_service):
    return ReportService(store, principal_service)


@pytest.fixture
def companies(store) -> Dict[str, Company]:
    seeded = {}
    for company_id, name in ((C1, "Northside Security"), (C2, "Harbour Patrol")):
        company = Company(id=company_id, name=name)
        store.create(COMPANIES_COLLECTION, to_record(company, exclude={"id"}), record_id=company_id)
        seeded[company_id] = company
    return seeded


@pytest.fixture
def people(store, companies) -> Dict[str, Principal]:
    return {
        principal_id: seed_principal(store, make_principal(principal_id, role, company_id))
        for principal_id, (role, company_id) in PEOPLE.items()
    }


@pytest.fixture
def new_report(report_service, people):
    """Factory filing a fresh crime report as resident U."""
    def _create(title: str = "Break-in at corner shop") -> Report:
        return report_service.create_report(
            people["U"],
            ReportCreate(kind="crime", title=title, crime_type="burglary", location="Main Road")
        )
    return _create


@pytest.fixture
def client(principal_service, company_service, report_service):
    from app.main import app

    app.dependency_overrides[get_principal_service] = lambda: principal_service
    app.dependency_overrides[get_company_service] = lambda: company_service
    app.dependency_overrides[get_report_service] = lambda: report_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def as_actor(principal_id: str) -> Dict[str, str]:
    return {"X-Actor-Id": principal_id}
