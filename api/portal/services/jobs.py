from __future__ import annotations

import logging
from typing import Any

from portal.core.auth import Principal, Role
from portal.core.errors import NotFoundError
from portal.schemas.jobs import JobCreateRequest, JobUpdateRequest
from portal.services.cascade import CascadeResult, delete_job_cascade

logger = logging.getLogger(__name__)

JOB_MANAGER_ROLES = {Role.EMPLOYER, Role.ADMIN}
RECOMMENDATION_HISTORY_SIZE = 5


async def get_job_or_404(repository: Any, job_id: str) -> dict[str, Any]:
    job = await repository.get_job(job_id)
    if not job:
        raise NotFoundError("job not found")
    return job


async def create_job(repository: Any, principal: Principal, payload: JobCreateRequest) -> dict[str, Any]:
    principal.require_roles(JOB_MANAGER_ROLES)
    salary = payload.salary_range
    job = await repository.create_job(
        created_by=principal.user_id,
        title=payload.title,
        description=payload.description,
        company_name=payload.company_name,
        location=payload.location,
        job_type=payload.job_type,
        salary_min=salary.min if salary else None,
        salary_max=salary.max if salary else None,
        skills=payload.skills,
        job_status=payload.job_status,
    )
    logger.info("job created job_id=%s created_by=%s", job["id"], principal.user_id)
    return job


async def search_jobs(
    repository: Any,
    *,
    q: str | None,
    location: str | None,
    job_type: str | None,
    skills: list[str] | None,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    return await repository.list_jobs(
        status="Active",
        q=q,
        location=location,
        job_type=job_type,
        skills=[skill.strip() for skill in skills or [] if skill.strip()] or None,
        limit=limit,
        offset=offset,
    )


async def list_my_jobs(repository: Any, principal: Principal, *, limit: int, offset: int) -> list[dict[str, Any]]:
    principal.require_roles(JOB_MANAGER_ROLES)
    return await repository.list_jobs(created_by=principal.user_id, limit=limit, offset=offset)


async def update_job(
    repository: Any,
    principal: Principal,
    job_id: str,
    payload: JobUpdateRequest,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Returns the job before and after the update."""
    principal.require_roles(JOB_MANAGER_ROLES)
    job = await get_job_or_404(repository, job_id)
    principal.require_owner(job["created_by"], resource="job")

    changes: dict[str, Any] = {}
    for field in ("title", "description", "company_name", "location", "job_type", "skills", "job_status"):
        if field in payload.model_fields_set:
            changes[field] = getattr(payload, field)
    if "salary_range" in payload.model_fields_set:
        salary = payload.salary_range
        changes["salary_min"] = salary.min if salary else None
        changes["salary_max"] = salary.max if salary else None

    updated = await repository.update_job(job["id"], changes)
    if not updated:
        raise NotFoundError("job not found")
    logger.info("job updated job_id=%s fields=%s actor_id=%s", job["id"], sorted(changes), principal.user_id)
    return job, updated


async def delete_job(repository: Any, principal: Principal, job_id: str) -> CascadeResult:
    principal.require_roles(JOB_MANAGER_ROLES)
    job = await get_job_or_404(repository, job_id)
    principal.require_owner(job["created_by"], resource="job", action="delete")
    return await delete_job_cascade(repository, job["id"])


async def recommended_jobs(repository: Any, principal: Principal, *, limit: int) -> list[dict[str, Any]]:
    """Active jobs sharing a job type or skill with the candidate's recent applications."""
    principal.require_roles({Role.CANDIDATE})
    applied = await repository.list_applications(candidate_id=principal.user_id)
    recent = applied[:RECOMMENDATION_HISTORY_SIZE]

    job_types = sorted({row["job_type"] for row in recent if row.get("job_type")})
    skills = sorted({skill for row in recent for skill in row.get("job_skills") or []})
    return await repository.list_jobs(
        status="Active",
        exclude_ids=[row["job_id"] for row in applied],
        match_job_types=job_types or None,
        match_skills=skills or None,
        limit=limit,
        offset=0,
    )
