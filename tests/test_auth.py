"""Registration, login and bearer-token resolution."""

from auth import hash_password, verify_password
from tests.helpers import register


def test_password_hash_roundtrip():
    stored = hash_password("secret123", pepper="pepper")
    assert verify_password("secret123", stored, pepper="pepper")
    assert not verify_password("secret124", stored, pepper="pepper")
    assert not verify_password("secret123", stored)


def test_register_and_me(client):
    headers, user_id = register(client, "Asha")
    resp = client.get("/api/auth/me", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == user_id
    assert body["email"] == "asha@example.com"
    assert "password_hash" not in body
    assert "token" not in body


def test_duplicate_email_rejected(client):
    register(client, "Asha")
    resp = client.post(
        "/api/auth/register",
        json={"name": "Other", "email": "ASHA@example.com", "password": "secret123"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already registered"


def test_short_password_rejected(client):
    resp = client.post("/api/auth/register", json={"name": "A", "email": "a@example.com", "password": "123"})
    assert resp.status_code == 400


def test_login(client):
    register(client, "Asha")
    good = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "secret123"})
    assert good.status_code == 200
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {good.json()['token']}"}).status_code == 200
    bad = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "wrong-pass"})
    assert bad.status_code == 401


def test_missing_or_bad_token(client):
    assert client.get("/api/auth/me").json()["detail"] == "Not authorized, no token"
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Not authorized, token failed"


def test_health(client):
    assert client.get("/").json()["status"] == "ok"
    assert client.get("/test").json()["database"] == "connected"
