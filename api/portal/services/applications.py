from __future__ import annotations

import logging
from typing import Any

from portal.core.auth import Principal, Role
from portal.core.errors import ConflictError, NotFoundError, ValidationError
from portal.schemas.applications import ApplicationCreateRequest
from portal.services.jobs import get_job_or_404

logger = logging.getLogger(__name__)

REVIEWER_ROLES = {Role.EMPLOYER, Role.ADMIN}


async def get_application_or_404(repository: Any, application_id: str) -> dict[str, Any]:
    application = await repository.get_application(application_id)
    if not application:
        raise NotFoundError("application not found")
    return application


async def apply_for_job(
    repository: Any,
    principal: Principal,
    payload: ApplicationCreateRequest,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Create a pending application and return it with its job.

    The existence pre-check only produces a friendly error; the unique
    (job_id, candidate_id) index rejects a racing duplicate with the same
    ConflictError.
    """
    principal.require_roles({Role.CANDIDATE})
    job = await get_job_or_404(repository, payload.job_id)
    if job["job_status"] != "Active":
        raise ValidationError("job is not active")

    if await repository.find_application(job_id=job["id"], candidate_id=principal.user_id):
        raise ConflictError("already applied for this job")

    application = await repository.create_application(
        job_id=job["id"],
        candidate_id=principal.user_id,
        cover_letter=payload.cover_letter,
        resume=payload.resume,
    )
    logger.info(
        "application submitted application_id=%s job_id=%s candidate_id=%s",
        application["id"],
        job["id"],
        principal.user_id,
    )
    return application, job


async def list_my_applications(repository: Any, principal: Principal) -> list[dict[str, Any]]:
    principal.require_roles({Role.CANDIDATE})
    return await repository.list_applications(candidate_id=principal.user_id)


async def application_history(repository: Any, principal: Principal) -> dict[str, Any]:
    applications = await list_my_applications(repository, principal)
    return {
        "applications": applications,
        "stats": {
            "total": len(applications),
            "companies_applied_to": len({row["company_name"] for row in applications if row.get("company_name")}),
            "job_types_applied_for": len({row["job_type"] for row in applications if row.get("job_type")}),
        },
    }


async def list_job_applications(repository: Any, principal: Principal, job_id: str) -> list[dict[str, Any]]:
    principal.require_roles(REVIEWER_ROLES)
    job = await get_job_or_404(repository, job_id)
    principal.require_owner(job["created_by"], resource="job", action="view applications for")
    return await repository.list_applications(job_id=job["id"])


async def list_all_applications(
    repository: Any,
    principal: Principal,
    *,
    status: str | None,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    principal.require_roles({Role.ADMIN})
    return await repository.list_applications(status=status, limit=limit, offset=offset)


async def update_application_status(
    repository: Any,
    principal: Principal,
    application_id: str,
    status: str,
) -> dict[str, Any]:
    principal.require_roles(REVIEWER_ROLES)
    application = await get_application_or_404(repository, application_id)
    principal.require_owner(application["job_owner_id"], resource="application", action="review")

    updated = await repository.set_application_status(application_id=application["id"], status=status)
    if not updated:
        raise NotFoundError("application not found")
    logger.info(
        "application status changed application_id=%s from=%s to=%s actor_id=%s",
        application["id"],
        application["application_status"],
        status,
        principal.user_id,
    )
    return updated


async def withdraw_application(repository: Any, principal: Principal, application_id: str) -> None:
    application = await get_application_or_404(repository, application_id)
    principal.require_owner(application["candidate_id"], resource="application", action="delete")
    await repository.delete_applications(application_ids=[application["id"]])
    logger.info("application deleted application_id=%s actor_id=%s", application["id"], principal.user_id)
