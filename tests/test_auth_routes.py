from datetime import datetime, timedelta, timezone

import jwt

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, JWT_SECRET


def test_login_success_returns_token(client):
    r = client.post('/api/auth/login', json={"email": ADMIN_EMAIL.upper(), "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    body = r.get_json()
    assert body["ok"] is True
    assert body["user"]["email"] == ADMIN_EMAIL
    r = client.post('/api/auth/verify', json={"token": body["token"]})
    assert r.status_code == 200
    assert r.get_json()["user"]["role"] == "admin"


def test_login_requires_fields(client):
    r = client.post('/api/auth/login', json={"email": ADMIN_EMAIL})
    assert r.status_code == 400


def test_failed_logins_count_down_then_lock(client):
    for remaining in (4, 3, 2, 1):
        r = client.post('/api/auth/login', json={"email": ADMIN_EMAIL, "password": "nope"})
        assert r.status_code == 401
        assert f"{remaining} attempts remaining" in r.get_json()["error"]

    r = client.post('/api/auth/login', json={"email": ADMIN_EMAIL, "password": "nope"})
    assert r.status_code == 429
    assert "locked for 15 minutes" in r.get_json()["error"]

    # Even the right password is refused while locked
    r = client.post('/api/auth/login', json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert r.status_code == 429
    assert "try again in 15 minutes" in r.get_json()["error"]


def test_successful_login_resets_counter(client):
    client.post('/api/auth/login', json={"email": ADMIN_EMAIL, "password": "nope"})
    client.post('/api/auth/login', json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    r = client.post('/api/auth/login', json={"email": ADMIN_EMAIL, "password": "nope"})
    assert "4 attempts remaining" in r.get_json()["error"]


def test_verify_rejects_garbage(client):
    assert client.post('/api/auth/verify', json={}).status_code == 400
    assert client.post('/api/auth/verify', json={"token": "abc"}).status_code == 401


def test_protected_route_requires_token(client):
    r = client.get('/api/students')
    assert r.status_code == 401
    assert r.get_json()["error"] == "Access denied. Authentication required."


def test_expired_token_reports_reason(client):
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    token = jwt.encode({"email": ADMIN_EMAIL, "exp": past}, JWT_SECRET, algorithm="HS256")
    r = client.get('/api/students', headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.get_json()["reason"] == "expired"


def test_token_accepted_from_query_string(client):
    token = jwt.encode(
        {"email": ADMIN_EMAIL, "exp": datetime.now(timezone.utc) + timedelta(minutes=10)},
        JWT_SECRET, algorithm="HS256",
    )
    r = client.get(f'/api/students?token={token}')
    assert r.status_code == 200
    assert r.headers.get("X-Token-Expiring-Soon") == "1"


def test_health_and_security_headers(client):
    r = client.get('/health', headers={"X-Request-ID": "trace-1"})
    assert r.status_code == 200
    assert r.get_json()["status"] == "OK"
    assert r.headers["X-Request-ID"] == "trace-1"
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_api_path_is_json_404(client):
    r = client.get('/api/does-not-exist')
    assert r.status_code == 404
    assert r.get_json()["ok"] is False
