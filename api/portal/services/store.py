from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from itertools import count
from typing import Any
from uuid import uuid4

from portal.services.repository import (
    JOB_UPDATABLE_FIELDS,
    RepositoryConflictError,
    RepositoryNotFoundError,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    """Single-process store used when no database is configured.

    Mirrors the PostgreSQL repository, including the unique email and
    (job_id, candidate_id) constraints, so service code behaves the same.
    """

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.jobs: dict[str, dict[str, Any]] = {}
        self.applications: dict[str, dict[str, Any]] = {}
        self._emails: dict[str, str] = {}
        self._application_keys: dict[tuple[str, str], str] = {}
        self._sequence = count(1)
        self._in_transaction = False

    async def close(self) -> None:
        return None

    async def ensure_schema(self) -> None:
        return None

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._in_transaction:
            yield
            return
        snapshot = self._snapshot()
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._restore(snapshot)
            raise
        finally:
            self._in_transaction = False

    # users

    async def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        role: str,
        first_name: str | None = None,
        last_name: str | None = None,
        company: str | None = None,
    ) -> dict[str, Any]:
        normalized_email = email.strip().lower()
        if normalized_email in self._emails:
            raise RepositoryConflictError("user already exists")
        if role == "admin" and any(user["role"] == "admin" for user in self.users.values()):
            raise RepositoryConflictError("admin already exists")
        now = _now()
        user = {
            "id": str(uuid4()),
            "email": normalized_email,
            "password_hash": password_hash,
            "first_name": first_name,
            "last_name": last_name,
            "company": company,
            "role": role,
            "is_banned": False,
            "created_at": now,
            "updated_at": now,
            "_seq": next(self._sequence),
        }
        self.users[user["id"]] = user
        self._emails[normalized_email] = user["id"]
        return self._public(user)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        user = self.users.get(user_id)
        return self._public(user) if user else None

    async def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        user_id = self._emails.get(email.strip().lower())
        return await self.get_user(user_id) if user_id else None

    async def get_any_admin(self) -> dict[str, Any] | None:
        admins = sorted(
            (user for user in self.users.values() if user["role"] == "admin"),
            key=lambda user: user["_seq"],
        )
        return self._public(admins[0]) if admins else None

    async def list_users(self, *, role: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [user for user in self.users.values() if role is None or user["role"] == role]
        rows = self._newest_first(rows, "created_at")
        return [self._public(user) for user in rows[offset : offset + limit]]

    async def set_user_banned(self, *, user_id: str, banned: bool) -> dict[str, Any] | None:
        user = self.users.get(user_id)
        if user is None:
            return None
        user["is_banned"] = banned
        user["updated_at"] = _now()
        return self._public(user)

    async def delete_user(self, user_id: str) -> bool:
        if any(job["created_by"] == user_id for job in self.jobs.values()) or any(
            application["candidate_id"] == user_id for application in self.applications.values()
        ):
            raise RepositoryConflictError("user still has dependent records")
        user = self.users.pop(user_id, None)
        if user is None:
            return False
        self._emails.pop(user["email"], None)
        return True

    async def count_users(
        self,
        *,
        role: str | None = None,
        banned: bool | None = None,
        created_since: datetime | None = None,
    ) -> int:
        return sum(
            1
            for user in self.users.values()
            if (role is None or user["role"] == role)
            and (banned is None or user["is_banned"] == banned)
            and (created_since is None or user["created_at"] >= created_since)
        )

    # jobs

    async def create_job(
        self,
        *,
        created_by: str,
        title: str,
        description: str,
        company_name: str,
        location: str,
        job_type: str,
        salary_min: float | None = None,
        salary_max: float | None = None,
        skills: list[str] | None = None,
        job_status: str = "Active",
    ) -> dict[str, Any]:
        if created_by not in self.users:
            raise RepositoryNotFoundError("job owner not found")
        now = _now()
        job = {
            "id": str(uuid4()),
            "title": title,
            "description": description,
            "company_name": company_name,
            "location": location,
            "job_type": job_type,
            "salary_min": salary_min,
            "salary_max": salary_max,
            "skills": list(skills or []),
            "created_by": created_by,
            "job_status": job_status,
            "created_at": now,
            "updated_at": now,
            "_seq": next(self._sequence),
        }
        self.jobs[job["id"]] = job
        return self._job_view(job)

    async def get_job(self, job_id: str) -> dict[str, Any] | None:
        job = self.jobs.get(job_id)
        return self._job_view(job) if job else None

    async def list_jobs(
        self,
        *,
        limit: int,
        offset: int,
        status: str | None = None,
        q: str | None = None,
        location: str | None = None,
        job_type: str | None = None,
        skills: list[str] | None = None,
        created_by: str | None = None,
        exclude_ids: list[str] | None = None,
        match_job_types: list[str] | None = None,
        match_skills: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        needle = q.strip().lower() if q and q.strip() else None
        location_needle = location.strip().lower() if location and location.strip() else None
        job_type_value = job_type.strip() if job_type and job_type.strip() else None
        excluded = set(exclude_ids or [])

        def matches(job: dict[str, Any]) -> bool:
            if status and job["job_status"] != status:
                return False
            if needle and not any(
                needle in job[field].lower() for field in ("title", "description", "company_name")
            ):
                return False
            if location_needle and location_needle not in job["location"].lower():
                return False
            if job_type_value and job["job_type"] != job_type_value:
                return False
            if skills and not set(skills) & set(job["skills"]):
                return False
            if created_by is not None and job["created_by"] != created_by:
                return False
            if job["id"] in excluded:
                return False
            if match_job_types or match_skills:
                type_hit = bool(match_job_types) and job["job_type"] in match_job_types
                skill_hit = bool(match_skills) and bool(set(match_skills) & set(job["skills"]))
                if not (type_hit or skill_hit):
                    return False
            return True

        rows = self._newest_first([job for job in self.jobs.values() if matches(job)], "created_at")
        return [self._job_view(job) for job in rows[offset : offset + limit]]

    async def update_job(self, job_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        unknown = set(changes) - JOB_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"unsupported job fields: {sorted(unknown)}")
        job = self.jobs.get(job_id)
        if job is None:
            return None
        for key, value in changes.items():
            job[key] = list(value) if key == "skills" else value
        job["updated_at"] = _now()
        return self._job_view(job)

    async def list_job_ids_by_owner(self, owner_id: str) -> list[str]:
        return [job["id"] for job in self.jobs.values() if job["created_by"] == owner_id]

    async def delete_jobs(self, job_ids: list[str]) -> int:
        targets = set(job_ids)
        if any(application["job_id"] in targets for application in self.applications.values()):
            raise RepositoryConflictError("job still has applications")
        deleted = 0
        for job_id in targets:
            if self.jobs.pop(job_id, None) is not None:
                deleted += 1
        return deleted

    async def count_jobs(self, *, status: str | None = None, created_since: datetime | None = None) -> int:
        return sum(
            1
            for job in self.jobs.values()
            if (status is None or job["job_status"] == status)
            and (created_since is None or job["created_at"] >= created_since)
        )

    # applications

    async def create_application(
        self,
        *,
        job_id: str,
        candidate_id: str,
        cover_letter: str | None = None,
        resume: str | None = None,
    ) -> dict[str, Any]:
        if job_id not in self.jobs:
            raise RepositoryNotFoundError("job not found")
        if candidate_id not in self.users:
            raise RepositoryNotFoundError("candidate not found")
        key = (job_id, candidate_id)
        if key in self._application_keys:
            raise RepositoryConflictError("already applied for this job")
        now = _now()
        application = {
            "id": str(uuid4()),
            "job_id": job_id,
            "candidate_id": candidate_id,
            "cover_letter": cover_letter,
            "resume": resume,
            "application_status": "pending",
            "applied_at": now,
            "updated_at": now,
            "_seq": next(self._sequence),
        }
        self.applications[application["id"]] = application
        self._application_keys[key] = application["id"]
        return self._application_view(application)

    async def get_application(self, application_id: str) -> dict[str, Any] | None:
        application = self.applications.get(application_id)
        return self._application_view(application) if application else None

    async def find_application(self, *, job_id: str, candidate_id: str) -> dict[str, Any] | None:
        application_id = self._application_keys.get((job_id, candidate_id))
        return await self.get_application(application_id) if application_id else None

    async def list_applications(
        self,
        *,
        job_id: str | None = None,
        candidate_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        rows = [
            application
            for application in self.applications.values()
            if (job_id is None or application["job_id"] == job_id)
            and (candidate_id is None or application["candidate_id"] == candidate_id)
            and (status is None or application["application_status"] == status)
        ]
        rows = self._newest_first(rows, "applied_at")
        end = None if limit is None else offset + limit
        return [self._application_view(application) for application in rows[offset:end]]

    async def set_application_status(self, *, application_id: str, status: str) -> dict[str, Any] | None:
        application = self.applications.get(application_id)
        if application is None:
            return None
        application["application_status"] = status
        application["updated_at"] = _now()
        return self._application_view(application)

    async def delete_applications(
        self,
        *,
        application_ids: list[str] | None = None,
        job_ids: list[str] | None = None,
        candidate_id: str | None = None,
    ) -> int:
        if application_ids is None and job_ids is None and candidate_id is None:
            return 0
        id_filter = set(application_ids) if application_ids is not None else None
        job_filter = set(job_ids) if job_ids is not None else None
        targets = [
            application
            for application in self.applications.values()
            if (id_filter is None or application["id"] in id_filter)
            and (job_filter is None or application["job_id"] in job_filter)
            and (candidate_id is None or application["candidate_id"] == candidate_id)
        ]
        for application in targets:
            self.applications.pop(application["id"], None)
            self._application_keys.pop((application["job_id"], application["candidate_id"]), None)
        return len(targets)

    async def count_applications(self, *, since: datetime | None = None) -> int:
        return sum(
            1 for application in self.applications.values() if since is None or application["applied_at"] >= since
        )

    # internals

    def _snapshot(self) -> tuple[dict[str, dict[str, Any]], ...]:
        return (
            {key: dict(value) for key, value in self.users.items()},
            {key: dict(value) for key, value in self.jobs.items()},
            {key: dict(value) for key, value in self.applications.items()},
        )

    def _restore(self, snapshot: tuple[dict[str, dict[str, Any]], ...]) -> None:
        self.users, self.jobs, self.applications = snapshot
        self._emails = {user["email"]: user_id for user_id, user in self.users.items()}
        self._application_keys = {
            (application["job_id"], application["candidate_id"]): application_id
            for application_id, application in self.applications.items()
        }

    @staticmethod
    def _newest_first(rows: list[dict[str, Any]], field: str) -> list[dict[str, Any]]:
        return sorted(rows, key=lambda row: (row[field], row["_seq"]), reverse=True)

    @staticmethod
    def _public(record: dict[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in record.items() if not key.startswith("_")}

    def _job_view(self, job: dict[str, Any]) -> dict[str, Any]:
        view = self._public(job)
        salary_min = view.pop("salary_min")
        salary_max = view.pop("salary_max")
        view["salary_range"] = (
            {"min": salary_min, "max": salary_max} if salary_min is not None or salary_max is not None else None
        )
        view["skills"] = list(job["skills"])
        creator = self.users.get(job["created_by"])
        view["creator_email"] = creator["email"] if creator else None
        return view

    def _application_view(self, application: dict[str, Any]) -> dict[str, Any]:
        view = self._public(application)
        job = self.jobs.get(application["job_id"], {})
        candidate = self.users.get(application["candidate_id"], {})
        view.update(
            {
                "job_title": job.get("title"),
                "company_name": job.get("company_name"),
                "job_location": job.get("location"),
                "job_type": job.get("job_type"),
                "job_skills": list(job.get("skills") or []),
                "job_owner_id": job.get("created_by"),
                "candidate_email": candidate.get("email"),
            }
        )
        return view
