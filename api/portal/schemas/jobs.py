from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

JobStatus = Literal["Active", "Inactive"]


class SalaryRange(BaseModel):
    min: float | None = Field(default=None, ge=0)
    max: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "SalaryRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("salary_range.min must not exceed salary_range.max")
        return self


def _normalize_skills(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    skills: list[str] = []
    for item in value:
        stripped = item.strip()
        if stripped and stripped not in skills:
            skills.append(stripped)
    return skills


class JobCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    company_name: str = Field(min_length=1, max_length=200)
    location: str = Field(min_length=1, max_length=200)
    job_type: str = Field(min_length=1, max_length=50)
    salary_range: SalaryRange | None = None
    skills: list[str] = Field(default_factory=list)
    job_status: JobStatus = "Active"

    @field_validator("skills")
    @classmethod
    def normalize_skills(cls, value: list[str]) -> list[str]:
        return _normalize_skills(value) or []


class JobUpdateRequest(BaseModel):
    """Partial update; `salary_range` replaces the stored range as a whole."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    company_name: str | None = Field(default=None, min_length=1, max_length=200)
    location: str | None = Field(default=None, min_length=1, max_length=200)
    job_type: str | None = Field(default=None, min_length=1, max_length=50)
    salary_range: SalaryRange | None = None
    skills: list[str] | None = None
    job_status: JobStatus | None = None

    @field_validator("skills")
    @classmethod
    def normalize_skills(cls, value: list[str] | None) -> list[str] | None:
        return _normalize_skills(value)

    @model_validator(mode="after")
    def check_not_empty(self) -> "JobUpdateRequest":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        required = {"title", "description", "company_name", "location", "job_type", "skills", "job_status"}
        nulled = sorted(name for name in self.model_fields_set & required if getattr(self, name) is None)
        if nulled:
            raise ValueError(f"fields cannot be null: {', '.join(nulled)}")
        return self


class JobOut(BaseModel):
    id: str
    title: str
    description: str
    company_name: str
    location: str
    job_type: str
    salary_range: SalaryRange | None = None
    skills: list[str] = Field(default_factory=list)
    created_by: str
    creator_email: str | None = None
    job_status: JobStatus = "Active"
    created_at: datetime
    updated_at: datetime
