from fastapi import APIRouter, Depends, Query, status

from portal.core.security import get_principal
from portal.schemas.admin import MessageOut
from portal.schemas.jobs import JobCreateRequest, JobOut, JobUpdateRequest
from portal.services import jobs as job_service
from portal.services.notifications import get_notifier
from portal.services.repository import get_repository

router = APIRouter()


@router.get("", response_model=list[JobOut])
async def list_jobs(
    q: str | None = Query(default=None, min_length=1),
    location: str | None = Query(default=None, min_length=1),
    job_type: str | None = Query(default=None, min_length=1),
    skills: list[str] | None = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    repository=Depends(get_repository),
) -> list[JobOut]:
    rows = await job_service.search_jobs(
        repository,
        q=q,
        location=location,
        job_type=job_type,
        skills=skills,
        limit=limit,
        offset=offset,
    )
    return [JobOut(**row) for row in rows]


@router.get("/my", response_model=list[JobOut])
async def list_my_jobs(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobOut]:
    rows = await job_service.list_my_jobs(repository, principal, limit=limit, offset=offset)
    return [JobOut(**row) for row in rows]


@router.get("/recommended", response_model=list[JobOut])
async def list_recommended_jobs(
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=10, ge=1, le=50),
) -> list[JobOut]:
    rows = await job_service.recommended_jobs(repository, principal, limit=limit)
    return [JobOut(**row) for row in rows]


@router.get("/{job_id}", response_model=JobOut)
async def get_job(job_id: str, repository=Depends(get_repository)) -> JobOut:
    return JobOut(**await job_service.get_job_or_404(repository, job_id))


@router.post("", response_model=JobOut, status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreateRequest,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> JobOut:
    job = await job_service.create_job(repository, principal, payload)
    if job["job_status"] == "Active":
        await notifier.job_posted(job, actor_email=principal.email)
    return JobOut(**job)


@router.patch("/{job_id}", response_model=JobOut)
async def update_job(
    job_id: str,
    payload: JobUpdateRequest,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> JobOut:
    before, job = await job_service.update_job(repository, principal, job_id, payload)
    if before["job_status"] != job["job_status"]:
        await notifier.job_status_changed(job)
    return JobOut(**job)


@router.delete("/{job_id}", response_model=MessageOut)
async def delete_job(
    job_id: str,
    principal=Depends(get_principal),
    repository=Depends(get_repository),
) -> MessageOut:
    result = await job_service.delete_job(repository, principal, job_id)
    return MessageOut(message=f"job deleted with {result.deleted_applications} application(s)")
