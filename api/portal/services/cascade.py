from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from portal.core.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CascadeResult:
    deleted_jobs: int = 0
    deleted_applications: int = 0
    deleted_user: bool = False


async def delete_job_cascade(repository: Any, job_id: str) -> CascadeResult:
    """Remove a job and every application referencing it.

    Applications go first; each step tolerates already-missing rows so a
    retry after a partial failure converges on the same end state.
    """
    async with repository.atomic():
        deleted_applications = await repository.delete_applications(job_ids=[job_id])
        deleted_jobs = await repository.delete_jobs([job_id])

    logger.info(
        "job deleted job_id=%s deleted_applications=%s",
        job_id,
        deleted_applications,
    )
    return CascadeResult(deleted_jobs=deleted_jobs, deleted_applications=deleted_applications)


async def delete_user_cascade(repository: Any, user: dict[str, Any]) -> CascadeResult:
    if user["role"] == "admin":
        raise ValidationError("cannot delete admin users")

    result = CascadeResult()
    async with repository.atomic():
        if user["role"] == "employer":
            job_ids = await repository.list_job_ids_by_owner(user["id"])
            if job_ids:
                result.deleted_applications = await repository.delete_applications(job_ids=job_ids)
                result.deleted_jobs = await repository.delete_jobs(job_ids)
        elif user["role"] == "candidate":
            result.deleted_applications = await repository.delete_applications(candidate_id=user["id"])

        result.deleted_user = await repository.delete_user(user["id"])

    logger.info(
        "user deleted user_id=%s role=%s deleted_jobs=%s deleted_applications=%s",
        user["id"],
        user["role"],
        result.deleted_jobs,
        result.deleted_applications,
    )
    return result
