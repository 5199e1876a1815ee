from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import socketio

from portal.core.config import get_settings

logger = logging.getLogger(__name__)


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@lru_cache
def get_socket_server() -> socketio.AsyncServer:
    settings = get_settings()
    origins = [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins="*" if origins == ["*"] else origins,
    )


class Notifier:
    """Fans domain events out to role and user rooms.

    Delivery is at-most-once: recipients that are not connected miss the
    event and an emit failure never fails the originating request.
    """

    def __init__(self, server: Any) -> None:
        self.server = server

    async def job_posted(self, job: dict[str, Any], *, actor_email: str) -> None:
        payload = {
            "job_id": job["id"],
            "title": job["title"],
            "company_name": job["company_name"],
            "location": job["location"],
            "timestamp": _timestamp(),
        }
        await self._emit(
            "new_job",
            {**payload, "message": f"New job posted: {job['title']} at {job['company_name']}"},
            room="candidate",
        )
        await self._emit(
            "new_job",
            {**payload, "message": f"New job posted by {actor_email}: {job['title']}"},
            room="admin",
        )

    async def application_received(self, application: dict[str, Any], job: dict[str, Any], *, candidate_email: str) -> None:
        payload = {
            "application_id": application["id"],
            "job_id": job["id"],
            "job_title": job["title"],
            "candidate_email": candidate_email,
            "timestamp": _timestamp(),
        }
        await self._emit(
            "new_application",
            {**payload, "message": f"New application received for job: {job['title']}"},
            room=user_room(job["created_by"]),
        )
        await self._emit(
            "new_application",
            {**payload, "message": f"New application: {candidate_email} applied for {job['title']}"},
            room="admin",
        )

    async def user_banned(self, user_id: str) -> None:
        await self._emit(
            "account_banned",
            {"message": "Your account has been banned by an administrator", "timestamp": _timestamp()},
            room=user_room(user_id),
        )

    async def application_status_changed(self, application: dict[str, Any]) -> None:
        await self._emit(
            "application_status_changed",
            {
                "application_id": application["id"],
                "job_id": application["job_id"],
                "job_title": application.get("job_title"),
                "status": application["application_status"],
                "timestamp": _timestamp(),
            },
            room=user_room(application["candidate_id"]),
        )

    async def job_status_changed(self, job: dict[str, Any]) -> None:
        await self._emit(
            "job_updated",
            {
                "job_id": job["id"],
                "title": job["title"],
                "status": job["job_status"],
                "timestamp": _timestamp(),
            },
        )

    async def _emit(self, event: str, data: dict[str, Any], *, room: str | None = None) -> None:
        try:
            await self.server.emit(event, data, room=room)
        except Exception:
            logger.exception("notification emit failed event=%s room=%s", event, room)


@lru_cache
def get_notifier() -> Notifier:
    return Notifier(get_socket_server())
