import logging
from datetime import timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

import config
import database
from auth import hash_password, issue_token, verify_password, verify_token
from errors import AuthError
from helpers import auth_headers, register
from main import app
from timeutils import utcnow


def test_password_hash_round_trip():
    stored = hash_password("hunter22")
    assert verify_password("hunter22", stored)
    assert not verify_password("hunter23", stored)
    assert not verify_password("hunter22", "not-a-hash")


def test_token_round_trip():
    assert verify_token(issue_token("abc123")) == "abc123"


def test_expired_token_is_rejected():
    payload = {"user_id": "abc123", "exp": utcnow() - timedelta(minutes=1)}
    token = jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    with pytest.raises(AuthError):
        verify_token(token)


def test_token_signed_with_other_secret_is_rejected():
    token = jwt.encode({"user_id": "abc123"}, "other-secret", algorithm="HS256")
    with pytest.raises(AuthError):
        verify_token(token)


def test_register_and_login(client):
    body = register(client, email="Ada@Example.com")
    assert body["user"]["email"] == "ada@example.com"
    assert "password_hash" not in body["user"]

    r = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert verify_token(r.json()["token"]) == body["user"]["_id"]


def test_duplicate_registration(client):
    register(client)
    r = client.post("/api/auth/register", json={"email": "ada@example.com", "password": "secret123", "name": "A"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Email already registered"


def test_short_password_is_rejected(client):
    r = client.post("/api/auth/register", json={"email": "x@example.com", "password": "123", "name": "X"})
    assert r.status_code == 400


def test_wrong_password(client):
    register(client)
    r = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "nope-nope"})
    assert r.status_code == 401


def test_me(client):
    token = register(client)["token"]
    r = client.get("/api/auth/me", headers=auth_headers(token))
    assert r.status_code == 200
    assert r.json()["user"]["name"] == "Ada"


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "Token abc"},
    {"Authorization": "Bearer "},
    {"Authorization": "Bearer not-a-jwt"},
])
def test_protected_routes_require_a_valid_bearer(client, headers):
    for path in ("/api/tasks", "/api/journal", "/api/calendar/events?start=2025-07-01&end=2025-07-02"):
        r = client.get(path, headers=headers)
        assert r.status_code == 401, path


def _startup_warnings(caplog, monkeypatch):
    monkeypatch.setattr(database, "db", None)
    with caplog.at_level(logging.WARNING, logger="main"):
        with TestClient(app):
            pass
    return [r.getMessage() for r in caplog.records if r.name == "main"]


def test_default_secret_is_flagged_on_startup(caplog, monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET", config.DEFAULT_JWT_SECRET)
    assert any("JWT_SECRET" in message for message in _startup_warnings(caplog, monkeypatch))


def test_configured_secret_starts_quietly(caplog, monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET", "a-real-deployment-secret")
    assert not any("JWT_SECRET" in message for message in _startup_warnings(caplog, monkeypatch))
