from pydantic import BaseModel


class RecentActivityOut(BaseModel):
    new_users: int
    new_jobs: int
    new_applications: int


class DashboardStatsOut(BaseModel):
    total_users: int
    total_admins: int
    total_employers: int
    total_candidates: int
    banned_users: int
    total_jobs: int
    active_jobs: int
    inactive_jobs: int
    total_applications: int
    recent_activity: RecentActivityOut


class MessageOut(BaseModel):
    message: str


class UserDeletionOut(BaseModel):
    message: str
    deleted_jobs: int
    deleted_applications: int
