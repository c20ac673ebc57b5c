def test_health_ok(app):
    client = app.test_client()
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_login_bad_password(app):
    r = app.test_client().post("/auth/login", json={"email": "owner@alpha.test", "password": "nope"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid credentials"


def test_login_form_post(app):
    r = app.test_client().post("/auth/login", data={"email": "owner@alpha.test", "password": "pw"})
    assert r.status_code == 200
    assert r.json["role"] == "firm_owner"
    assert r.json["csrf_token"]


def test_login_rate_limited(app):
    client = app.test_client()
    for _ in range(5):
        assert client.post("/auth/login", json={"email": "x@alpha.test", "password": "pw"}).status_code == 401
    r = client.post("/auth/login", json={"email": "owner@alpha.test", "password": "pw"})
    assert r.status_code == 429


def test_anonymous_is_401(app):
    client = app.test_client()
    assert client.get("/api/users/me").status_code == 401
    r = client.get("/api/tasks")
    assert r.status_code == 401
    assert r.json["message"] == "Authentication required"


def test_anonymous_mutation_is_401_not_csrf_error(app):
    client = app.test_client()
    r = client.post("/api/tasks", json={"title": "x"})
    assert r.status_code == 401
    assert r.json["message"] == "Authentication required"
    assert client.post("/api/clients", json={"name": "x"}).status_code == 401


def test_mutation_requires_csrf(app, login):
    client, headers = login("owner@alpha.test")
    r = client.post("/api/tasks", json={"title": "No token"})
    assert r.status_code == 400
    assert "CSRF" in r.json["message"]

    r = client.post("/api/tasks", json={"title": "With token"}, headers=headers)
    assert r.status_code == 201


def test_logout_clears_session(app, login):
    client, headers = login("owner@alpha.test")
    assert client.get("/api/users/me").status_code == 200
    assert client.post("/auth/logout", headers=headers).json["success"] is True
    assert client.get("/api/users/me").status_code == 401


def test_timezone_endpoint(app):
    client = app.test_client()
    r = client.get("/api/timezone", headers={"X-Timezone": "Asia/Tokyo"})
    assert r.status_code == 200
    assert r.json["timezone"] == "Asia/Tokyo"
    assert r.json["offset"] == -540
    assert r.json["offset_string"] == "UTC+9"

    # Unknown header zone falls back to the configured default.
    r = client.get("/api/timezone", headers={"X-Timezone": "Mars/Base"})
    assert r.json["timezone"] == "America/Toronto"


def test_timezone_endpoint_echoes_date(app):
    r = app.test_client().get("/api/timezone?date=2025-03-09", headers={"X-Timezone": "Asia/Tokyo"})
    assert r.json["request"] == {"date": "2025-03-09", "timezone": "Asia/Tokyo", "offset": -540}


def test_user_timezone_used_when_no_header(app, login):
    from app.practice.db import session_scope
    from app.practice.models import User

    with session_scope(app) as s:
        s.query(User).filter(User.email == "staff@alpha.test").one().timezone = "Asia/Kolkata"

    client, _ = login("staff@alpha.test")
    assert client.get("/api/timezone").json["timezone"] == "Asia/Kolkata"
