from fastapi import APIRouter

from portal.api.routes import admin, applications, auth, health, jobs

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/api/auth", tags=["auth"])
api_router.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
api_router.include_router(applications.router, prefix="/api/applications", tags=["applications"])
api_router.include_router(admin.router, prefix="/api/admin", tags=["admin"])
