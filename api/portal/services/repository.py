from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from functools import lru_cache
from typing import Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from portal.core.config import get_settings
from portal.core.errors import ConflictError, NotFoundError, ServiceUnavailableError

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError, ServiceUnavailableError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError, NotFoundError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError, ConflictError):
    """Raised when a write violates a storage-level uniqueness constraint."""


USER_ROLES = {"admin", "employer", "candidate"}
JOB_STATUSES = {"Active", "Inactive"}
APPLICATION_STATUSES = {"pending", "accepted", "rejected"}
JOB_UPDATABLE_FIELDS = {
    "title",
    "description",
    "company_name",
    "location",
    "job_type",
    "salary_min",
    "salary_max",
    "skills",
    "job_status",
}

SCHEMA_STATEMENTS = (
    """
    create table if not exists users (
      id uuid primary key default gen_random_uuid(),
      email text not null,
      password_hash text not null,
      first_name text,
      last_name text,
      company text,
      role text not null check (role in ('admin', 'employer', 'candidate')),
      is_banned boolean not null default false,
      created_at timestamptz not null default now(),
      updated_at timestamptz not null default now()
    )
    """,
    "create unique index if not exists users_email_key on users (lower(email))",
    "create unique index if not exists users_single_admin_key on users (role) where role = 'admin'",
    "create index if not exists users_role_idx on users (role)",
    """
    create table if not exists jobs (
      id uuid primary key default gen_random_uuid(),
      title text not null,
      description text not null,
      company_name text not null,
      location text not null,
      job_type text not null,
      salary_min double precision,
      salary_max double precision,
      skills text[] not null default '{}',
      created_by uuid not null references users (id),
      job_status text not null default 'Active' check (job_status in ('Active', 'Inactive')),
      created_at timestamptz not null default now(),
      updated_at timestamptz not null default now(),
      constraint jobs_salary_range_check check (
        salary_min is null or salary_max is null or salary_min <= salary_max
      )
    )
    """,
    "create index if not exists jobs_created_by_idx on jobs (created_by)",
    "create index if not exists jobs_status_created_at_idx on jobs (job_status, created_at desc)",
    """
    create table if not exists applications (
      id uuid primary key default gen_random_uuid(),
      job_id uuid not null references jobs (id),
      candidate_id uuid not null references users (id),
      cover_letter text,
      resume text,
      application_status text not null default 'pending'
        check (application_status in ('pending', 'accepted', 'rejected')),
      applied_at timestamptz not null default now(),
      updated_at timestamptz not null default now()
    )
    """,
    "create unique index if not exists applications_job_candidate_key on applications (job_id, candidate_id)",
    "create index if not exists applications_candidate_idx on applications (candidate_id)",
)

_USER_COLUMNS = """
  id::text as id,
  email,
  password_hash,
  first_name,
  last_name,
  company,
  role,
  is_banned,
  created_at,
  updated_at
"""

_JOB_COLUMNS = """
  j.id::text as id,
  j.title,
  j.description,
  j.company_name,
  j.location,
  j.job_type,
  j.salary_min,
  j.salary_max,
  j.skills,
  j.created_by::text as created_by,
  u.email as creator_email,
  j.job_status,
  j.created_at,
  j.updated_at
"""

_APPLICATION_COLUMNS = """
  a.id::text as id,
  a.job_id::text as job_id,
  a.candidate_id::text as candidate_id,
  a.cover_letter,
  a.resume,
  a.application_status,
  a.applied_at,
  a.updated_at,
  j.title as job_title,
  j.company_name,
  j.location as job_location,
  j.job_type,
  j.skills as job_skills,
  j.created_by::text as job_owner_id,
  u.email as candidate_email
"""

# Binds the connection of an open transaction so nested repository calls share it.
_CURRENT_CONNECTION: ContextVar[Any] = ContextVar("portal_pg_connection", default=None)


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ensure_schema(self) -> None:
        async with self._connection() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        current = _CURRENT_CONNECTION.get()
        if current is not None:
            async with current.transaction():
                yield
            return

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                token = _CURRENT_CONNECTION.set(conn)
                try:
                    yield
                finally:
                    _CURRENT_CONNECTION.reset(token)

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
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(
                    f"""
                    insert into users (email, password_hash, role, first_name, last_name, company)
                    values ($1, $2, $3, $4, $5, $6)
                    returning {_USER_COLUMNS}
                    """,
                    email.strip().lower(),
                    password_hash,
                    role,
                    first_name,
                    last_name,
                    company,
                )
        except pg_exc.UniqueViolationError as exc:
            if exc.constraint_name == "users_single_admin_key":
                raise RepositoryConflictError("admin already exists") from exc
            raise RepositoryConflictError("user already exists") from exc
        return self._user_row_to_dict(row)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        normalized_id = self._coerce_uuid(user_id)
        if normalized_id is None:
            return None
        async with self._connection() as conn:
            row = await conn.fetchrow(f"select {_USER_COLUMNS} from users where id = $1::uuid", normalized_id)
        return self._user_row_to_dict(row) if row else None

    async def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"select {_USER_COLUMNS} from users where lower(email) = lower($1)",
                email.strip(),
            )
        return self._user_row_to_dict(row) if row else None

    async def get_any_admin(self) -> dict[str, Any] | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"select {_USER_COLUMNS} from users where role = 'admin' order by created_at asc limit 1"
            )
        return self._user_row_to_dict(row) if row else None

    async def list_users(self, *, role: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"""
                select {_USER_COLUMNS}
                from users
                where ($1::text is null or role = $1::text)
                order by created_at desc, id asc
                limit $2
                offset $3
                """,
                role,
                limit,
                offset,
            )
        return [self._user_row_to_dict(row) for row in rows]

    async def set_user_banned(self, *, user_id: str, banned: bool) -> dict[str, Any] | None:
        normalized_id = self._coerce_uuid(user_id)
        if normalized_id is None:
            return None
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                update users
                set is_banned = $2, updated_at = now()
                where id = $1::uuid
                returning {_USER_COLUMNS}
                """,
                normalized_id,
                banned,
            )
        return self._user_row_to_dict(row) if row else None

    async def delete_user(self, user_id: str) -> bool:
        normalized_id = self._coerce_uuid(user_id)
        if normalized_id is None:
            return False
        try:
            async with self._connection() as conn:
                result = await conn.execute("delete from users where id = $1::uuid", normalized_id)
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryConflictError("user still has dependent records") from exc
        return self._affected(result) > 0

    async def count_users(
        self,
        *,
        role: str | None = None,
        banned: bool | None = None,
        created_since: datetime | None = None,
    ) -> int:
        async with self._connection() as conn:
            value = await conn.fetchval(
                """
                select count(*)
                from users
                where ($1::text is null or role = $1::text)
                  and ($2::boolean is null or is_banned = $2::boolean)
                  and ($3::timestamptz is null or created_at >= $3::timestamptz)
                """,
                role,
                banned,
                created_since,
            )
        return int(value or 0)

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
        try:
            async with self._connection() as conn:
                job_id = await conn.fetchval(
                    """
                    insert into jobs (
                      title, description, company_name, location, job_type,
                      salary_min, salary_max, skills, created_by, job_status
                    )
                    values ($1, $2, $3, $4, $5, $6, $7, $8::text[], $9::uuid, $10)
                    returning id::text
                    """,
                    title,
                    description,
                    company_name,
                    location,
                    job_type,
                    salary_min,
                    salary_max,
                    list(skills or []),
                    created_by,
                    job_status,
                )
                row = await self._fetch_job_row(conn, job_id)
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError("job owner not found") from exc
        if row is None:
            raise RepositoryNotFoundError("job not found")
        return self._job_row_to_dict(row)

    async def get_job(self, job_id: str) -> dict[str, Any] | None:
        normalized_id = self._coerce_uuid(job_id)
        if normalized_id is None:
            return None
        async with self._connection() as conn:
            row = await self._fetch_job_row(conn, normalized_id)
        return self._job_row_to_dict(row) if row else None

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
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if status:
            conditions.append(f"j.job_status = {bind(status)}")

        normalized_q = self._coerce_text(q)
        if normalized_q:
            token = bind(normalized_q.lower())
            conditions.append(
                "("
                f"position({token} in lower(j.title)) > 0"
                f" or position({token} in lower(j.description)) > 0"
                f" or position({token} in lower(j.company_name)) > 0"
                ")"
            )

        normalized_location = self._coerce_text(location)
        if normalized_location:
            conditions.append(f"position({bind(normalized_location.lower())} in lower(j.location)) > 0")

        normalized_job_type = self._coerce_text(job_type)
        if normalized_job_type:
            conditions.append(f"j.job_type = {bind(normalized_job_type)}")

        if skills:
            conditions.append(f"j.skills && {bind(list(skills))}::text[]")

        if created_by is not None:
            owner_id = self._coerce_uuid(created_by)
            if owner_id is None:
                return []
            conditions.append(f"j.created_by = {bind(owner_id)}::uuid")

        excluded = [value for value in (self._coerce_uuid(item) for item in exclude_ids or []) if value]
        if excluded:
            conditions.append(f"not (j.id = any({bind(excluded)}::uuid[]))")

        preference_conditions: list[str] = []
        if match_job_types:
            preference_conditions.append(f"j.job_type = any({bind(list(match_job_types))}::text[])")
        if match_skills:
            preference_conditions.append(f"j.skills && {bind(list(match_skills))}::text[]")
        if preference_conditions:
            conditions.append("(" + " or ".join(preference_conditions) + ")")

        where_sql = " and ".join(conditions) if conditions else "true"
        limit_token = bind(limit)
        offset_token = bind(offset)

        async with self._connection() as conn:
            rows = await conn.fetch(
                f"""
                select {_JOB_COLUMNS}
                from jobs j
                left join users u on u.id = j.created_by
                where {where_sql}
                order by j.created_at desc, j.id asc
                limit {limit_token}
                offset {offset_token}
                """,
                *params,
            )
        return [self._job_row_to_dict(row) for row in rows]

    async def update_job(self, job_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        normalized_id = self._coerce_uuid(job_id)
        if normalized_id is None:
            return None
        unknown = set(changes) - JOB_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"unsupported job fields: {sorted(unknown)}")

        assignments: list[str] = []
        params: list[Any] = [normalized_id]
        for column, value in changes.items():
            params.append(list(value) if column == "skills" else value)
            cast = "::text[]" if column == "skills" else ""
            assignments.append(f"{column} = ${len(params)}{cast}")
        assignments.append("updated_at = now()")

        async with self._connection() as conn:
            updated = await conn.fetchval(
                f"update jobs set {', '.join(assignments)} where id = $1::uuid returning id::text",
                *params,
            )
            if updated is None:
                return None
            row = await self._fetch_job_row(conn, normalized_id)
        return self._job_row_to_dict(row) if row else None

    async def list_job_ids_by_owner(self, owner_id: str) -> list[str]:
        normalized_id = self._coerce_uuid(owner_id)
        if normalized_id is None:
            return []
        async with self._connection() as conn:
            rows = await conn.fetch("select id::text as id from jobs where created_by = $1::uuid", normalized_id)
        return [row["id"] for row in rows]

    async def delete_jobs(self, job_ids: list[str]) -> int:
        normalized_ids = [value for value in (self._coerce_uuid(item) for item in job_ids) if value]
        if not normalized_ids:
            return 0
        try:
            async with self._connection() as conn:
                result = await conn.execute("delete from jobs where id = any($1::uuid[])", normalized_ids)
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryConflictError("job still has applications") from exc
        return self._affected(result)

    async def count_jobs(self, *, status: str | None = None, created_since: datetime | None = None) -> int:
        async with self._connection() as conn:
            value = await conn.fetchval(
                """
                select count(*)
                from jobs
                where ($1::text is null or job_status = $1::text)
                  and ($2::timestamptz is null or created_at >= $2::timestamptz)
                """,
                status,
                created_since,
            )
        return int(value or 0)

    # applications

    async def create_application(
        self,
        *,
        job_id: str,
        candidate_id: str,
        cover_letter: str | None = None,
        resume: str | None = None,
    ) -> dict[str, Any]:
        try:
            async with self._connection() as conn:
                application_id = await conn.fetchval(
                    """
                    insert into applications (job_id, candidate_id, cover_letter, resume)
                    values ($1::uuid, $2::uuid, $3, $4)
                    returning id::text
                    """,
                    job_id,
                    candidate_id,
                    cover_letter,
                    resume,
                )
                row = await self._fetch_application_row(conn, application_id)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("already applied for this job") from exc
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError("job not found") from exc
        if row is None:
            raise RepositoryNotFoundError("application not found")
        return self._application_row_to_dict(row)

    async def get_application(self, application_id: str) -> dict[str, Any] | None:
        normalized_id = self._coerce_uuid(application_id)
        if normalized_id is None:
            return None
        async with self._connection() as conn:
            row = await self._fetch_application_row(conn, normalized_id)
        return self._application_row_to_dict(row) if row else None

    async def find_application(self, *, job_id: str, candidate_id: str) -> dict[str, Any] | None:
        normalized_job_id = self._coerce_uuid(job_id)
        normalized_candidate_id = self._coerce_uuid(candidate_id)
        if normalized_job_id is None or normalized_candidate_id is None:
            return None
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                select {_APPLICATION_COLUMNS}
                from applications a
                join jobs j on j.id = a.job_id
                join users u on u.id = a.candidate_id
                where a.job_id = $1::uuid and a.candidate_id = $2::uuid
                """,
                normalized_job_id,
                normalized_candidate_id,
            )
        return self._application_row_to_dict(row) if row else None

    async def list_applications(
        self,
        *,
        job_id: str | None = None,
        candidate_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        normalized_job_id = self._coerce_uuid(job_id) if job_id is not None else None
        normalized_candidate_id = self._coerce_uuid(candidate_id) if candidate_id is not None else None
        if (job_id is not None and normalized_job_id is None) or (
            candidate_id is not None and normalized_candidate_id is None
        ):
            return []
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"""
                select {_APPLICATION_COLUMNS}
                from applications a
                join jobs j on j.id = a.job_id
                join users u on u.id = a.candidate_id
                where ($1::uuid is null or a.job_id = $1::uuid)
                  and ($2::uuid is null or a.candidate_id = $2::uuid)
                  and ($3::text is null or a.application_status = $3::text)
                order by a.applied_at desc, a.id asc
                limit $4
                offset $5
                """,
                normalized_job_id,
                normalized_candidate_id,
                status,
                limit,
                offset,
            )
        return [self._application_row_to_dict(row) for row in rows]

    async def set_application_status(self, *, application_id: str, status: str) -> dict[str, Any] | None:
        normalized_id = self._coerce_uuid(application_id)
        if normalized_id is None:
            return None
        async with self._connection() as conn:
            updated = await conn.fetchval(
                """
                update applications
                set application_status = $2, updated_at = now()
                where id = $1::uuid
                returning id::text
                """,
                normalized_id,
                status,
            )
            if updated is None:
                return None
            row = await self._fetch_application_row(conn, normalized_id)
        return self._application_row_to_dict(row) if row else None

    async def delete_applications(
        self,
        *,
        application_ids: list[str] | None = None,
        job_ids: list[str] | None = None,
        candidate_id: str | None = None,
    ) -> int:
        conditions: list[str] = []
        params: list[Any] = []
        if application_ids is not None:
            params.append([value for value in (self._coerce_uuid(item) for item in application_ids) if value])
            conditions.append(f"id = any(${len(params)}::uuid[])")
        if job_ids is not None:
            params.append([value for value in (self._coerce_uuid(item) for item in job_ids) if value])
            conditions.append(f"job_id = any(${len(params)}::uuid[])")
        if candidate_id is not None:
            params.append(self._coerce_uuid(candidate_id))
            conditions.append(f"candidate_id = ${len(params)}::uuid")
        if not conditions or any(not value for value in params):
            return 0
        async with self._connection() as conn:
            result = await conn.execute(f"delete from applications where {' and '.join(conditions)}", *params)
        return self._affected(result)

    async def count_applications(self, *, since: datetime | None = None) -> int:
        async with self._connection() as conn:
            value = await conn.fetchval(
                "select count(*) from applications where ($1::timestamptz is null or applied_at >= $1::timestamptz)",
                since,
            )
        return int(value or 0)

    # internals

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        current = _CURRENT_CONNECTION.get()
        if current is not None:
            yield current
            return
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            yield conn

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JP_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            logger.exception("database pool creation failed")
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    async def _fetch_job_row(conn: Any, job_id: str) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select {_JOB_COLUMNS}
            from jobs j
            left join users u on u.id = j.created_by
            where j.id = $1::uuid
            """,
            job_id,
        )

    @staticmethod
    async def _fetch_application_row(conn: Any, application_id: str) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select {_APPLICATION_COLUMNS}
            from applications a
            join jobs j on j.id = a.job_id
            join users u on u.id = a.candidate_id
            where a.id = $1::uuid
            """,
            application_id,
        )

    @staticmethod
    def _user_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "email": row["email"],
            "password_hash": row["password_hash"],
            "first_name": row["first_name"],
            "last_name": row["last_name"],
            "company": row["company"],
            "role": row["role"],
            "is_banned": bool(row["is_banned"]),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _job_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        salary_min = row["salary_min"]
        salary_max = row["salary_max"]
        salary_range = None
        if salary_min is not None or salary_max is not None:
            salary_range = {"min": salary_min, "max": salary_max}
        return {
            "id": row["id"],
            "title": row["title"],
            "description": row["description"],
            "company_name": row["company_name"],
            "location": row["location"],
            "job_type": row["job_type"],
            "salary_range": salary_range,
            "skills": list(row["skills"] or []),
            "created_by": row["created_by"],
            "creator_email": row["creator_email"],
            "job_status": row["job_status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _application_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "job_id": row["job_id"],
            "candidate_id": row["candidate_id"],
            "cover_letter": row["cover_letter"],
            "resume": row["resume"],
            "application_status": row["application_status"],
            "applied_at": row["applied_at"],
            "updated_at": row["updated_at"],
            "job_title": row["job_title"],
            "company_name": row["company_name"],
            "job_location": row["job_location"],
            "job_type": row["job_type"],
            "job_skills": list(row["job_skills"] or []),
            "job_owner_id": row["job_owner_id"],
            "candidate_email": row["candidate_email"],
        }

    @staticmethod
    def _affected(result: str) -> int:
        # asyncpg returns command tags such as "DELETE 3".
        try:
            return int(result.rsplit(" ", maxsplit=1)[-1])
        except (ValueError, AttributeError):
            return 0

    @staticmethod
    def _coerce_uuid(value: Any) -> str | None:
        if value is None:
            return None
        try:
            return str(UUID(str(value)))
        except ValueError:
            return None

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)


@lru_cache
def get_repository() -> Any:
    settings = get_settings()
    if not settings.database_url:
        from portal.services.store import InMemoryRepository

        logger.warning("JP_DATABASE_URL not set; using the in-memory store for environment=%s", settings.environment)
        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
