from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from conftest import PortalApi, USER_PASSWORD
from portal.core.config import get_settings
from portal.core.security import create_access_token


def test_register_returns_token_and_public_user(client: TestClient) -> None:
    response = client.post(
        "/api/auth/register",
        json={"email": "Jane@Example.com", "password": "hunter22", "role": "candidate", "first_name": "Jane"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["token"]
    assert body["user"]["email"] == "jane@example.com"
    assert body["user"]["role"] == "candidate"
    assert body["user"]["is_banned"] is False
    assert "password_hash" not in body["user"]


def test_register_rejects_duplicate_email_case_insensitively(api: PortalApi) -> None:
    api.register("candidate", email="dup@example.com")

    response = api.client.post(
        "/api/auth/register",
        json={"email": "DUP@example.com", "password": USER_PASSWORD, "role": "employer"},
    )

    assert response.status_code == 409
    assert response.json() == {"error": "conflict", "detail": "user already exists"}


def test_register_cannot_create_admin(client: TestClient) -> None:
    response = client.post(
        "/api/auth/register",
        json={"email": "sneaky@example.com", "password": USER_PASSWORD, "role": "admin"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_register_lists_every_validation_error(client: TestClient) -> None:
    response = client.post("/api/auth/register", json={"email": "not-an-email", "password": "x"})

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert any(error.startswith("email:") for error in errors)
    assert any(error.startswith("password:") for error in errors)
    assert any(error.startswith("role:") for error in errors)


def test_login_and_profile(api: PortalApi) -> None:
    _, user = api.register("employer", email="boss@example.com", company="Acme")
    token = api.login("boss@example.com", USER_PASSWORD)

    response = api.client.get("/api/auth/profile", headers=api.headers(token))

    assert response.status_code == 200
    assert response.json()["id"] == user["id"]
    assert response.json()["company"] == "Acme"


def test_login_rejects_wrong_password_and_unknown_email_alike(api: PortalApi) -> None:
    api.register("candidate", email="someone@example.com")

    wrong_password = api.client.post("/api/auth/login", json={"email": "someone@example.com", "password": "nope-nope"})
    unknown = api.client.post("/api/auth/login", json={"email": "nobody@example.com", "password": USER_PASSWORD})

    assert wrong_password.status_code == 401
    assert unknown.status_code == 401
    assert wrong_password.json() == unknown.json() == {"error": "authentication_error", "detail": "invalid credentials"}


def test_profile_requires_token(client: TestClient) -> None:
    response = client.get("/api/auth/profile")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["detail"] == "authentication required: no token provided"


def test_garbage_token_is_rejected(client: TestClient) -> None:
    response = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["detail"] == "invalid token"


def test_expired_token_is_rejected(api: PortalApi) -> None:
    _, user = api.register("candidate")
    settings = get_settings()
    stale = create_access_token(
        user["id"],
        settings,
        now=datetime.now(timezone.utc) - timedelta(minutes=settings.jwt_expires_minutes + 5),
    )

    response = api.client.get("/api/auth/profile", headers=api.headers(stale))

    assert response.status_code == 401
    assert response.json()["detail"] == "token expired"


def test_token_for_deleted_user_is_rejected(api: PortalApi, repository) -> None:
    token, user = api.register("candidate")
    asyncio.run(repository.delete_user(user["id"]))

    response = api.client.get("/api/auth/profile", headers=api.headers(token))

    assert response.status_code == 401
    assert response.json()["detail"] == "invalid token"


def test_ban_takes_effect_on_existing_token(api: PortalApi) -> None:
    token, user = api.register("candidate", email="banned@example.com")
    admin = api.admin_token()
    assert api.client.get("/api/auth/profile", headers=api.headers(token)).status_code == 200

    ban = api.client.post(f"/api/admin/users/{user['id']}/ban", headers=api.headers(admin))
    assert ban.status_code == 200
    assert ban.json()["is_banned"] is True

    profile = api.client.get("/api/auth/profile", headers=api.headers(token))
    assert profile.status_code == 401
    assert profile.json()["detail"] == "user is banned"

    login = api.client.post("/api/auth/login", json={"email": "banned@example.com", "password": USER_PASSWORD})
    assert login.status_code == 401
    assert login.json()["detail"] == "user is banned"

    unban = api.client.post(f"/api/admin/users/{user['id']}/unban", headers=api.headers(admin))
    assert unban.status_code == 200
    assert api.client.get("/api/auth/profile", headers=api.headers(token)).status_code == 200


def test_register_rejects_password_longer_than_72_bytes(client: TestClient) -> None:
    # 40 characters, 80 bytes once encoded.
    response = client.post(
        "/api/auth/register",
        json={"email": "accents@example.com", "password": "é" * 40, "role": "candidate"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"
    assert any(error.startswith("password:") and "72 bytes" in error for error in response.json()["errors"])


def test_register_accepts_multibyte_password_within_72_bytes(api: PortalApi) -> None:
    api.register("candidate", email="multibyte@example.com", password="é" * 36)

    assert api.login("multibyte@example.com", "é" * 36)


def test_login_with_oversized_password_is_rejected_not_crashed(api: PortalApi) -> None:
    api.register("candidate", email="oversized@example.com")

    response = api.client.post("/api/auth/login", json={"email": "oversized@example.com", "password": "é" * 40})

    assert response.status_code == 401
    assert response.json()["detail"] == "invalid credentials"
