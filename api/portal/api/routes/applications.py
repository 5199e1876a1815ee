from fastapi import APIRouter, Depends, Query, status

from portal.core.security import get_principal
from portal.schemas.admin import MessageOut
from portal.schemas.applications import (
    ApplicationCreateRequest,
    ApplicationHistoryOut,
    ApplicationOut,
    ApplicationStatus,
    ApplicationStatusPatchRequest,
)
from portal.services import applications as application_service
from portal.services.notifications import get_notifier
from portal.services.repository import get_repository

router = APIRouter()


@router.post("", response_model=ApplicationOut, status_code=status.HTTP_201_CREATED)
async def apply_for_job(
    payload: ApplicationCreateRequest,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ApplicationOut:
    application, job = await application_service.apply_for_job(repository, principal, payload)
    await notifier.application_received(application, job, candidate_email=principal.email)
    return ApplicationOut(**application)


@router.get("/my", response_model=list[ApplicationOut])
async def list_my_applications(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> list[ApplicationOut]:
    rows = await application_service.list_my_applications(repository, principal)
    return [ApplicationOut(**row) for row in rows]


@router.get("/my/history", response_model=ApplicationHistoryOut)
async def get_my_application_history(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> ApplicationHistoryOut:
    return ApplicationHistoryOut(**await application_service.application_history(repository, principal))


@router.get("/job/{job_id}", response_model=list[ApplicationOut])
async def list_job_applications(
    job_id: str,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> list[ApplicationOut]:
    rows = await application_service.list_job_applications(repository, principal, job_id)
    return [ApplicationOut(**row) for row in rows]


@router.get("", response_model=list[ApplicationOut])
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


@router.patch("/{application_id}/status", response_model=ApplicationOut)
async def patch_application_status(
    application_id: str,
    payload: ApplicationStatusPatchRequest,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ApplicationOut:
    application = await application_service.update_application_status(
        repository,
        principal,
        application_id,
        payload.status,
    )
    await notifier.application_status_changed(application)
    return ApplicationOut(**application)


@router.delete("/{application_id}", response_model=MessageOut)
async def delete_application(
    application_id: str,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> MessageOut:
    await application_service.withdraw_application(repository, principal, application_id)
    return MessageOut(message="application deleted successfully")
