from fastapi import APIRouter, Depends, Query

from portal.core.security import get_principal
from portal.schemas.admin import DashboardStatsOut, UserDeletionOut
from portal.schemas.applications import ApplicationOut, ApplicationStatus
from portal.schemas.jobs import JobOut, JobStatus
from portal.schemas.users import UserOut, UserRole
from portal.services import admin as admin_service
from portal.services import applications as application_service
from portal.services.notifications import get_notifier
from portal.services.repository import get_repository

router = APIRouter()


@router.get("/users", response_model=list[UserOut])
async def list_users(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    role: UserRole | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[UserOut]:
    rows = await admin_service.list_users(repository, principal, role=role, limit=limit, offset=offset)
    return [UserOut(**row) for row in rows]


@router.get("/jobs", response_model=list[JobOut])
async def list_jobs(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    job_status: JobStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobOut]:
    rows = await admin_service.list_all_jobs(repository, principal, status=job_status, limit=limit, offset=offset)
    return [JobOut(**row) for row in rows]


@router.get("/applications", response_model=list[ApplicationOut])
async def list_applications(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    application_status: ApplicationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ApplicationOut]:
    rows = await application_service.list_all_applications(
        repository,
        principal,
        status=application_status,
        limit=limit,
        offset=offset,
    )
    return [ApplicationOut(**row) for row in rows]


@router.post("/users/{user_id}/ban", response_model=UserOut)
async def ban_user(
    user_id: str,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> UserOut:
    user = await admin_service.set_user_banned(repository, principal, user_id=user_id, banned=True)
    await notifier.user_banned(user["id"])
    return UserOut(**user)


@router.post("/users/{user_id}/unban", response_model=UserOut)
async def unban_user(
    user_id: str,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> UserOut:
    user = await admin_service.set_user_banned(repository, principal, user_id=user_id, banned=False)
    return UserOut(**user)


@router.delete("/users/{user_id}", response_model=UserDeletionOut)
async def delete_user(
    user_id: str,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> UserDeletionOut:
    result = await admin_service.delete_user(repository, principal, user_id=user_id)
    return UserDeletionOut(
        message="user and associated data deleted successfully",
        deleted_jobs=result.deleted_jobs,
        deleted_applications=result.deleted_applications,
    )


@router.get("/stats", response_model=DashboardStatsOut)
async def get_dashboard_stats(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> DashboardStatsOut:
    return DashboardStatsOut(**await admin_service.dashboard_stats(repository, principal))
