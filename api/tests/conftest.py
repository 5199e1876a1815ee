from __future__ import annotations

from itertools import count
import os
from typing import Any

# The app reads settings at import time; pin them before it is imported.
_INTEGRATION_DATABASE_URL = os.environ.pop("JP_DATABASE_URL", None) or os.environ.get("DATABASE_URL")
os.environ["JP_OTEL_ENABLED"] = "false"
os.environ["JP_BCRYPT_ROUNDS"] = "4"
os.environ["JP_JWT_SECRET"] = "test-only-jwt-secret-with-at-least-32-bytes"
os.environ["JP_ADMIN_EMAIL"] = "admin@example.com"
os.environ["JP_ADMIN_PASSWORD"] = "admin-password"

import pytest
from fastapi.testclient import TestClient

from portal.core.config import get_settings
from portal.main import app
from portal.services.repository import get_repository

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"
USER_PASSWORD = "secret-password"


class PortalApi:
    """Thin request helpers shared by the HTTP tests."""

    def __init__(self, client: TestClient) -> None:
        self.client = client
        self._emails = count(1)

    @staticmethod
    def headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def register(self, role: str, email: str | None = None, **extra: Any) -> tuple[str, dict[str, Any]]:
        payload = {
            "email": email or f"{role}{next(self._emails)}@example.com",
            "password": USER_PASSWORD,
            "role": role,
            **extra,
        }
        response = self.client.post("/api/auth/register", json=payload)
        assert response.status_code == 201, response.text
        body = response.json()
        return body["token"], body["user"]

    def login(self, email: str, password: str) -> str:
        response = self.client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["token"]

    def admin_token(self) -> str:
        return self.login(ADMIN_EMAIL, ADMIN_PASSWORD)

    def create_job(self, token: str, **overrides: Any) -> dict[str, Any]:
        payload = {
            "title": "Backend Engineer",
            "description": "Build and run the hiring platform.",
            "company_name": "Acme",
            "location": "Berlin",
            "job_type": "Full-time",
            "salary_range": {"min": 50000, "max": 70000},
            "skills": ["python", "postgres"],
            **overrides,
        }
        response = self.client.post("/api/jobs", json=payload, headers=self.headers(token))
        assert response.status_code == 201, response.text
        return response.json()

    def apply(self, token: str, job_id: str, **extra: Any) -> dict[str, Any]:
        response = self.client.post(
            "/api/applications",
            json={"job_id": job_id, **extra},
            headers=self.headers(token),
        )
        assert response.status_code == 201, response.text
        return response.json()


@pytest.fixture
def client() -> TestClient:
    get_settings.cache_clear()
    get_repository.cache_clear()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()
    get_repository.cache_clear()


@pytest.fixture
def api(client: TestClient) -> PortalApi:
    return PortalApi(client)


@pytest.fixture
def repository(client: TestClient) -> Any:
    # Same cached instance the app lifespan bootstrapped.
    return get_repository()


@pytest.fixture
def integration_database_url() -> str:
    if not _INTEGRATION_DATABASE_URL:
        pytest.skip("JP_DATABASE_URL or DATABASE_URL not set")
    return _INTEGRATION_DATABASE_URL
