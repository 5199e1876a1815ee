from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ApplicationStatus = Literal["pending", "accepted", "rejected"]


class ApplicationCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    job_id: str = Field(min_length=1)
    cover_letter: str | None = Field(default=None, max_length=10_000)
    resume: str | None = Field(default=None, max_length=2_048)


class ApplicationStatusPatchRequest(BaseModel):
    status: ApplicationStatus


class ApplicationOut(BaseModel):
    id: str
    job_id: str
    candidate_id: str
    cover_letter: str | None = None
    resume: str | None = None
    application_status: ApplicationStatus = "pending"
    applied_at: datetime
    updated_at: datetime
    job_title: str | None = None
    company_name: str | None = None
    job_location: str | None = None
    job_type: str | None = None
    candidate_email: str | None = None


class ApplicationHistoryStatsOut(BaseModel):
    total: int
    companies_applied_to: int
    job_types_applied_for: int


class ApplicationHistoryOut(BaseModel):
    applications: list[ApplicationOut] = Field(default_factory=list)
    stats: ApplicationHistoryStatsOut
