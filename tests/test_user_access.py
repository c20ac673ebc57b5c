from app.practice.db import session_scope
from app.practice.models import AuditEvent, FirmUser


def test_me_returns_module_permissions(app, login, ids):
    client, _ = login("staff@alpha.test")
    r = client.get("/api/users/me")
    assert r.status_code == 200
    assert r.json["id"] == ids["staff"]
    assert r.json["firm_id"] == ids["alpha"]
    assert r.json["module_permissions"] == ["tasks"]


def test_me_without_firm(app, login):
    client, _ = login("root@platform.test")
    r = client.get("/api/users/me")
    assert r.status_code == 200
    assert r.json["module_permissions"] == []


def test_staff_cannot_write_permissions(app, login, ids):
    client, headers = login("staff@alpha.test")
    r = client.post("/api/user-permissions", json={"userId": ids["staff"], "modules": ["billing"]}, headers=headers)
    assert r.status_code == 403
    assert r.json["message"] == "Insufficient permissions"


def test_owner_updates_modules_and_access_follows(app, login, ids):
    staff_client, _ = login("staff@alpha.test")
    assert staff_client.get("/api/clients").status_code == 403

    owner, headers = login("owner@alpha.test")
    r = owner.post(
        "/api/user-permissions",
        json={"userId": ids["staff"], "modules": ["clients", "payroll", "clients", 7, "tasks"]},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json["modules"] == ["clients", "tasks"]
    assert r.json["user_email"] == "staff@alpha.test"

    assert staff_client.get("/api/clients").status_code == 200

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "firm_user.permissions_update").one()
        assert ev.actor_user_id == ids["owner"]


def test_upsert_requires_user_and_modules(app, login):
    owner, headers = login("owner@alpha.test")
    r = owner.post("/api/user-permissions", json={"modules": ["tasks"]}, headers=headers)
    assert r.status_code == 400
    r = owner.post("/api/user-permissions", json={"userId": 1, "modules": "tasks"}, headers=headers)
    assert r.status_code == 400


def test_cannot_grant_user_of_another_firm(app, login, ids):
    owner, headers = login("owner@alpha.test")
    r = owner.post("/api/user-permissions", json={"userId": ids["beta_owner"], "modules": ["tasks"]}, headers=headers)
    assert r.status_code == 404
    with session_scope(app) as s:
        assert s.query(FirmUser).filter(FirmUser.user_id == ids["beta_owner"]).count() == 0


def test_patch_creates_membership(app, login, ids):
    owner, headers = login("owner@alpha.test")
    r = owner.patch(f"/api/user-permissions/{ids['viewer']}", json={"modules": ["billing"]}, headers=headers)
    assert r.status_code == 201
    assert r.json["modules"] == ["billing"]
    assert r.json["role"] == "manager"

    r = owner.patch(f"/api/user-permissions/{ids['viewer']}", json={"modules": ["billing", "reports"]}, headers=headers)
    assert r.status_code == 200
    assert r.json["role"] == "manager"

    viewer, _ = login("viewer@alpha.test")
    assert viewer.get("/api/users/me").json["module_permissions"] == ["billing", "reports"]


def test_list_permissions_scoped_to_firm(app, login, ids):
    owner, _ = login("owner@beta.test")
    r = owner.get("/api/user-permissions")
    assert r.status_code == 200
    assert r.json == []

    owner, _ = login("owner@alpha.test")
    users = {row["user_id"] for row in owner.get("/api/user-permissions").json}
    assert users == {ids["staff"], ids["portal"]}


def test_no_firm_has_no_scope(app, login):
    client, _ = login("root@platform.test")
    assert client.get("/api/user-permissions").status_code == 401
    assert client.get("/api/users/role/staff").status_code == 401


def test_staff_listing(app, login, ids):
    owner, _ = login("owner@alpha.test")
    r = owner.get("/api/users/role/staff")
    assert r.status_code == 200
    assert {u["id"] for u in r.json} == {ids["owner"], ids["viewer"]}


def test_staff_assignments_lifecycle(app, login, ids):
    owner, headers = login("owner@alpha.test")
    r = owner.post(
        "/api/staff-assignments",
        json={"staffId": ids["staff"], "clientId": ids["alpha_client"], "canViewFinancials": True, "isClientManager": True},
        headers=headers,
    )
    assert r.status_code == 201
    assignment_id = r.json["id"]
    assert r.json["role"] == "manager"
    assert r.json["permissions"] == ["view_financials", "client_manager"]
    assert r.json["client_name"] == "Maple Bakery"

    other, other_headers = login("owner@beta.test")
    assert other.get("/api/staff-assignments").json == []
    r = other.delete(f"/api/staff-assignments/{assignment_id}", headers=other_headers)
    assert r.status_code == 404
    assert r.json == {"success": False, "message": "Not found"}

    assert [a["id"] for a in owner.get("/api/staff-assignments").json] == [assignment_id]
    r = owner.delete(f"/api/staff-assignments/{assignment_id}", headers=headers)
    assert r.status_code == 200
    assert owner.get("/api/staff-assignments").json == []

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "client_assignment.delete").count() == 1


def test_assignment_to_foreign_client_rejected(app, login, ids):
    owner, headers = login("owner@alpha.test")
    r = owner.post(
        "/api/staff-assignments",
        json={"staffId": ids["staff"], "clientId": ids["beta_client"]},
        headers=headers,
    )
    assert r.status_code == 404


def test_client_portal_user_cannot_read_firm_staff_data(app, login):
    client, _ = login("portal@alpha.test")
    for path in ("/api/user-permissions", "/api/users/role/staff", "/api/staff-assignments"):
        r = client.get(path)
        assert r.status_code == 403, path
        assert r.json == {"message": "Insufficient permissions"}

    # Their own profile stays readable.
    assert client.get("/api/users/me").json["module_permissions"] == ["clients"]
