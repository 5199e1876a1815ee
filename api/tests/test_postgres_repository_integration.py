from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from portal.services.cascade import delete_job_cascade, delete_user_cascade
from portal.services.repository import PostgresRepository, RepositoryConflictError


def _run(database_url: str, scenario) -> None:
    async def wrapper() -> None:
        repository = PostgresRepository(database_url=database_url, min_pool_size=1, max_pool_size=2)
        try:
            await repository.ensure_schema()
            await scenario(repository)
        finally:
            await repository.close()

    asyncio.run(wrapper())


def _email(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}@example.com"


def test_email_uniqueness_is_case_insensitive(integration_database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        email = _email("dup")
        user = await repository.create_user(email=email, password_hash="x", role="candidate")
        assert (await repository.get_user_by_email(email.upper()))["id"] == user["id"]
        with pytest.raises(RepositoryConflictError):
            await repository.create_user(email=email.upper(), password_hash="x", role="employer")
        await repository.delete_user(user["id"])

    _run(integration_database_url, scenario)


def test_application_pair_is_unique(integration_database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        employer = await repository.create_user(email=_email("emp"), password_hash="x", role="employer")
        candidate = await repository.create_user(email=_email("cand"), password_hash="x", role="candidate")
        job = await repository.create_job(
            created_by=employer["id"],
            title="Integration Engineer",
            description="d",
            company_name="Acme",
            location="Remote",
            job_type="Full-time",
            salary_min=10,
            salary_max=20,
            skills=["python"],
        )
        assert job["salary_range"] == {"min": 10, "max": 20}

        application = await repository.create_application(job_id=job["id"], candidate_id=candidate["id"])
        assert application["job_owner_id"] == employer["id"]
        with pytest.raises(RepositoryConflictError):
            await repository.create_application(job_id=job["id"], candidate_id=candidate["id"])

        result = await delete_job_cascade(repository, job["id"])
        assert result.deleted_applications == 1
        await delete_user_cascade(repository, candidate)
        await delete_user_cascade(repository, employer)

    _run(integration_database_url, scenario)


def test_employer_cascade_is_atomic(integration_database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        employer = await repository.create_user(email=_email("emp"), password_hash="x", role="employer")
        candidate = await repository.create_user(email=_email("cand"), password_hash="x", role="candidate")
        jobs = [
            await repository.create_job(
                created_by=employer["id"],
                title=title,
                description="d",
                company_name="Acme",
                location="Remote",
                job_type="Full-time",
            )
            for title in ("J1", "J2")
        ]
        for job in jobs:
            await repository.create_application(job_id=job["id"], candidate_id=candidate["id"])

        result = await delete_user_cascade(repository, employer)

        assert (result.deleted_jobs, result.deleted_applications, result.deleted_user) == (2, 2, True)
        assert await repository.get_user(employer["id"]) is None
        assert await repository.list_applications(candidate_id=candidate["id"]) == []
        await delete_user_cascade(repository, candidate)

    _run(integration_database_url, scenario)


def test_only_one_admin_can_exist(integration_database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        created = None
        if await repository.get_any_admin() is None:
            created = await repository.create_user(email=_email("admin"), password_hash="x", role="admin")
        try:
            with pytest.raises(RepositoryConflictError, match="admin already exists"):
                await repository.create_user(email=_email("second-admin"), password_hash="x", role="admin")
        finally:
            if created is not None:
                await repository.delete_user(created["id"])

    _run(integration_database_url, scenario)
