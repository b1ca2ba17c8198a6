from tests.conftest import as_actor

CRIME_REPORT = {
    "kind": "crime",
    "severity": "high",
    "title": "Break-in at corner shop",
    "crime_type": "burglary",
    "location": "Main Road",
}


def _file_report(client) -> dict:
    resp = client.post("/reports", json=CRIME_REPORT, headers=as_actor("U"))
    assert resp.status_code == 201
    return resp.json()


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json()["status"] == "healthy"


def test_missing_actor_header_is_401(client, people):
    resp = client.post("/reports", json=CRIME_REPORT)
    assert resp.status_code == 401
    assert resp.json()["code"] == "Unauthorized"


def test_unknown_actor_is_401(client, people):
    resp = client.get("/reports", headers=as_actor("ghost"))
    assert resp.status_code == 401


def test_file_and_read_report(client, people):
    report = _file_report(client)
    assert report["status"] == "pending"
    assert report["reporter_id"] == "U"

    fetched = client.get(f"/reports/{report['id']}", headers=as_actor("K"))
    assert fetched.status_code == 200
    assert fetched.json()["title"] == CRIME_REPORT["title"]

    listed = client.get("/reports", params={"status": "pending"}, headers=as_actor("K"))
    assert [r["id"] for r in listed.json()] == [report["id"]]


def test_unknown_literals_are_400(client, people):
    resp = client.post("/reports", json={**CRIME_REPORT, "kind": "noise"}, headers=as_actor("U"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "ValidationError"

    report = _file_report(client)
    resp = client.patch(f"/reports/{report['id']}/status", json={"status": "closed"}, headers=as_actor("M"))
    assert resp.status_code == 400


def test_malformed_body_is_400(client, people):
    resp = client.post("/reports", json={"kind": "crime"}, headers=as_actor("U"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "ValidationError"


def test_missing_report_is_404(client, people):
    resp = client.patch("/reports/nope/status", json={"status": "active"}, headers=as_actor("M"))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NotFound"


def test_status_route_maps_refusals(client, people):
    report = _file_report(client)
    url = f"/reports/{report['id']}/status"

    assert client.patch(url, json={"status": "active"}, headers=as_actor("U")).status_code == 403
    assert client.patch(url, json={"status": "resolved"}, headers=as_actor("M")).status_code == 409

    resp = client.patch(url, json={"status": "active", "note": "Confirmed by patrol"}, headers=as_actor("M"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "active"
    assert resp.json()["status_history"][0]["note"] == "Confirmed by patrol"


def test_dispatch_flow_over_http(client, people):
    report = _file_report(client)

    resp = client.post(
        f"/reports/{report['id']}/dispatch",
        json={"responder_id": "X", "priority": "high"},
        headers=as_actor("K")
    )
    assert resp.status_code == 201
    record = resp.json()
    assert record["status"] == "pending"

    again = client.post(f"/reports/{report['id']}/dispatch", json={"responder_id": "X2"}, headers=as_actor("K"))
    assert again.status_code == 409
    assert again.json()["code"] == "AlreadyDispatched"

    jump = client.patch(f"/dispatches/{record['id']}/status", json={"status": "on_scene"}, headers=as_actor("X"))
    assert jump.status_code == 409
    assert jump.json()["code"] == "InvalidTransition"

    step = client.patch(f"/dispatches/{record['id']}/status", json={"status": "dispatched"}, headers=as_actor("X"))
    assert step.status_code == 200

    records = client.get(f"/reports/{report['id']}/dispatch", headers=as_actor("K")).json()
    assert [r["status"] for r in records] == ["dispatched"]
    assert client.get(f"/reports/{report['id']}", headers=as_actor("K")).json()["company_id"] == "C1"


def test_severity_route(client, people):
    report = _file_report(client)
    resp = client.patch(f"/reports/{report['id']}/severity", json={"severity": "critical"}, headers=as_actor("M"))
    assert resp.status_code == 200
    assert resp.json()["severity"] == "critical"


def test_admin_principal_routes(client, people):
    resp = client.patch("/admin/principals/U/role", json={"role": "moderator"}, headers=as_actor("G"))
    assert resp.status_code == 200
    assert resp.json()["principal"]["role"] == "moderator"

    resp = client.patch("/admin/principals/G/role", json={"role": "user"}, headers=as_actor("U"))
    assert resp.status_code == 403
    assert resp.json()["code"] == "InsufficientRank"

    resp = client.patch("/admin/principals/G/status", json={"status": "suspended"}, headers=as_actor("G"))
    assert resp.status_code == 403
    assert resp.json()["code"] == "SelfActionForbidden"

    resp = client.patch("/admin/principals/U/role", json={"role": "administrator"}, headers=as_actor("G"))
    assert resp.status_code == 400


def test_suspended_actor_is_401(client, people):
    assert client.delete("/admin/principals/X", headers=as_actor("M")).status_code == 200
    resp = client.patch("/admin/principals/U/status", json={"status": "active"}, headers=as_actor("X"))
    assert resp.status_code == 401
    assert resp.json()["code"] == "ActorInactive"


def test_admin_principal_create_and_list(client, people):
    resp = client.post(
        "/admin/principals",
        json={"id": "N", "role": "responder", "company_id": "C1", "status": "active"},
        headers=as_actor("A1")
    )
    assert resp.status_code == 201

    listed = client.get("/admin/principals", params={"role": "responder"}, headers=as_actor("A1")).json()
    assert {p["id"] for p in listed["principals"]} == {"X", "X2", "N"}

    cross = client.patch("/admin/principals/Y/company", json={"company_id": "C1"}, headers=as_actor("A1"))
    assert cross.status_code == 403
    assert cross.json()["code"] == "CrossCompany"


def test_admin_company_routes(client, people):
    created = client.post("/admin/companies", json={"name": "Eastside Watch"}, headers=as_actor("G"))
    assert created.status_code == 201
    company_id = created.json()["company"]["id"]

    assert client.post("/admin/companies", json={"name": "Rogue"}, headers=as_actor("A1")).status_code == 403
    assert client.delete("/admin/companies/C1", headers=as_actor("G")).status_code == 400
    assert client.delete(f"/admin/companies/{company_id}", headers=as_actor("G")).status_code == 200

    renamed = client.patch("/admin/companies/C1", json={"name": "Northside Group"}, headers=as_actor("A1"))
    assert renamed.status_code == 200
    assert renamed.json()["company"]["name"] == "Northside Group"

    listed = client.get("/admin/companies", headers=as_actor("A1")).json()
    assert [c["id"] for c in listed["companies"]] == ["C1"]


def test_admin_audit_route(client, people):
    client.patch("/admin/principals/U/role", json={"role": "controller"}, headers=as_actor("A1"))
    client.patch("/admin/principals/Y/status", json={"status": "suspended"}, headers=as_actor("A2"))

    resp = client.get("/admin/audit", params={"action": "change_role"}, headers=as_actor("G"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["events"][0]["target_id"] == "U"
    assert body["events"][0]["details"] == {"from": "user", "to": "controller"}

    scoped = client.get("/admin/audit", headers=as_actor("A1")).json()
    assert {e["actor_id"] for e in scoped["events"]} == {"A1"}

    denied = client.get("/admin/audit", headers=as_actor("M"))
    assert denied.status_code == 403
    assert denied.json()["code"] == "InsufficientRank"
