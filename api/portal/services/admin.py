from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from portal.core.auth import Principal, Role
from portal.core.errors import NotFoundError, ValidationError
from portal.services.cascade import CascadeResult, delete_user_cascade

logger = logging.getLogger(__name__)

ADMIN_ONLY = {Role.ADMIN}
RECENT_ACTIVITY_WINDOW = timedelta(days=7)


async def get_user_or_404(repository: Any, user_id: str) -> dict[str, Any]:
    user = await repository.get_user(user_id)
    if not user:
        raise NotFoundError("user not found")
    return user


async def list_users(
    repository: Any,
    principal: Principal,
    *,
    role: str | None,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    principal.require_roles(ADMIN_ONLY)
    return await repository.list_users(role=role, limit=limit, offset=offset)


async def list_all_jobs(
    repository: Any,
    principal: Principal,
    *,
    status: str | None,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    principal.require_roles(ADMIN_ONLY)
    return await repository.list_jobs(status=status, limit=limit, offset=offset)


async def set_user_banned(repository: Any, principal: Principal, *, user_id: str, banned: bool) -> dict[str, Any]:
    principal.require_roles(ADMIN_ONLY)
    user = await get_user_or_404(repository, user_id)
    if banned and user["role"] == Role.ADMIN.value:
        raise ValidationError("cannot ban admin users")

    updated = await repository.set_user_banned(user_id=user["id"], banned=banned)
    if not updated:
        raise NotFoundError("user not found")
    logger.info(
        "user ban state changed user_id=%s banned=%s actor_id=%s",
        updated["id"],
        banned,
        principal.user_id,
    )
    return updated


async def delete_user(repository: Any, principal: Principal, *, user_id: str) -> CascadeResult:
    principal.require_roles(ADMIN_ONLY)
    user = await get_user_or_404(repository, user_id)
    return await delete_user_cascade(repository, user)


async def dashboard_stats(repository: Any, principal: Principal, *, now: datetime | None = None) -> dict[str, Any]:
    principal.require_roles(ADMIN_ONLY)
    since = (now or datetime.now(timezone.utc)) - RECENT_ACTIVITY_WINDOW
    return {
        "total_users": await repository.count_users(),
        "total_admins": await repository.count_users(role=Role.ADMIN.value),
        "total_employers": await repository.count_users(role=Role.EMPLOYER.value),
        "total_candidates": await repository.count_users(role=Role.CANDIDATE.value),
        "banned_users": await repository.count_users(banned=True),
        "total_jobs": await repository.count_jobs(),
        "active_jobs": await repository.count_jobs(status="Active"),
        "inactive_jobs": await repository.count_jobs(status="Inactive"),
        "total_applications": await repository.count_applications(),
        "recent_activity": {
            "new_users": await repository.count_users(created_since=since),
            "new_jobs": await repository.count_jobs(created_since=since),
            "new_applications": await repository.count_applications(since=since),
        },
    }
