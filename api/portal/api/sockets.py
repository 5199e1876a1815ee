from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import socketio

from portal.core.config import get_settings
from portal.core.errors import AuthenticationError
from portal.core.security import parse_bearer_token, resolve_principal
from portal.services.notifications import user_room
from portal.services.repository import get_repository

logger = logging.getLogger(__name__)


def _connection_token(environ: dict[str, Any], auth: Any) -> str | None:
    if isinstance(auth, dict) and isinstance(auth.get("token"), str):
        return auth["token"]
    return parse_bearer_token(environ.get("HTTP_AUTHORIZATION"))


def _recipient_room(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    recipient_id = data.get("recipient_id")
    if not isinstance(recipient_id, str) or not recipient_id:
        return None
    return user_room(recipient_id)


def register_socket_handlers(server: socketio.AsyncServer) -> None:
    async def active_session(sid: str) -> dict[str, Any] | None:
        # Bans apply to live connections, not only to new ones.
        session = await server.get_session(sid)
        user = await get_repository().get_user(session["user_id"])
        if not user or user["is_banned"]:
            logger.info("socket dropped for inactive user user_id=%s sid=%s", session["user_id"], sid)
            await server.disconnect(sid)
            return None
        return session

    @server.event
    async def connect(sid: str, environ: dict[str, Any], auth: Any = None) -> None:
        try:
            principal = await resolve_principal(
                _connection_token(environ, auth),
                repository=get_repository(),
                settings=get_settings(),
            )
        except AuthenticationError as exc:
            logger.info("socket connection refused sid=%s reason=%s", sid, exc.message)
            raise socketio.exceptions.ConnectionRefusedError(exc.message) from exc

        await server.save_session(
            sid,
            {"user_id": principal.user_id, "role": principal.role.value, "email": principal.email},
        )
        await server.enter_room(sid, principal.role.value)
        await server.enter_room(sid, user_room(principal.user_id))
        logger.info("socket connected user_id=%s role=%s sid=%s", principal.user_id, principal.role.value, sid)

    @server.event
    async def send_message(sid: str, data: Any) -> None:
        room = _recipient_room(data)
        if room is None:
            return
        session = await active_session(sid)
        if session is None:
            return
        await server.emit(
            "receive_message",
            {
                "sender_id": session["user_id"],
                "sender_email": session["email"],
                "message": data.get("message"),
                "application_id": data.get("application_id"),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            room=room,
        )

    @server.event
    async def typing(sid: str, data: Any) -> None:
        room = _recipient_room(data)
        if room is None:
            return
        session = await active_session(sid)
        if session is None:
            return
        await server.emit(
            "user_typing",
            {"user_id": session["user_id"], "email": session["email"]},
            room=room,
            skip_sid=sid,
        )

    @server.event
    async def stop_typing(sid: str, data: Any) -> None:
        room = _recipient_room(data)
        if room is None:
            return
        session = await active_session(sid)
        if session is None:
            return
        await server.emit("user_stop_typing", {"user_id": session["user_id"]}, room=room, skip_sid=sid)

    @server.event
    async def disconnect(sid: str, *args: Any) -> None:
        logger.info("socket disconnected sid=%s", sid)
