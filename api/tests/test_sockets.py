from __future__ import annotations

import asyncio
from typing import Any

import pytest
import socketio

from conftest import PortalApi
from portal.api.sockets import register_socket_handlers
from portal.services.notifications import user_room


class FakeSocketServer:
    """Records what the handlers do instead of talking to real clients."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.sessions: dict[str, dict[str, Any]] = {}
        self.rooms: dict[str, set[str]] = {}
        self.emitted: list[tuple[str, dict[str, Any], str | None, str | None]] = []
        self.disconnected: list[str] = []

    def event(self, handler):
        self.handlers[handler.__name__] = handler
        return handler

    async def save_session(self, sid: str, session: dict[str, Any]) -> None:
        self.sessions[sid] = session

    async def get_session(self, sid: str) -> dict[str, Any]:
        return self.sessions[sid]

    async def enter_room(self, sid: str, room: str) -> None:
        self.rooms.setdefault(sid, set()).add(room)

    async def emit(self, event: str, data: dict[str, Any], room: str | None = None, skip_sid: str | None = None) -> None:
        self.emitted.append((event, data, room, skip_sid))

    async def disconnect(self, sid: str) -> None:
        self.disconnected.append(sid)


@pytest.fixture
def sockets(client) -> FakeSocketServer:
    server = FakeSocketServer()
    register_socket_handlers(server)
    return server


def _connect(server: FakeSocketServer, sid: str, token: str | None, **environ: str) -> None:
    auth = {"token": token} if token is not None else None
    asyncio.run(server.handlers["connect"](sid, dict(environ), auth))


def test_connect_joins_role_and_user_rooms(api: PortalApi, sockets: FakeSocketServer) -> None:
    token, user = api.register("employer")

    _connect(sockets, "sid-1", token)

    assert sockets.rooms["sid-1"] == {"employer", user_room(user["id"])}
    assert sockets.sessions["sid-1"]["user_id"] == user["id"]


def test_connect_accepts_authorization_header(api: PortalApi, sockets: FakeSocketServer) -> None:
    token, _ = api.register("candidate")

    _connect(sockets, "sid-1", None, HTTP_AUTHORIZATION=f"Bearer {token}")

    assert "candidate" in sockets.rooms["sid-1"]


@pytest.mark.parametrize("token", [None, "garbage"])
def test_connect_refuses_missing_or_invalid_token(sockets: FakeSocketServer, token: str | None) -> None:
    with pytest.raises(socketio.exceptions.ConnectionRefusedError):
        _connect(sockets, "sid-1", token)
    assert "sid-1" not in sockets.rooms


def test_connect_refuses_banned_user(api: PortalApi, sockets: FakeSocketServer) -> None:
    token, user = api.register("candidate")
    api.client.post(f"/api/admin/users/{user['id']}/ban", headers=api.headers(api.admin_token()))

    with pytest.raises(socketio.exceptions.ConnectionRefusedError):
        _connect(sockets, "sid-1", token)


def test_messages_and_typing_are_relayed_to_recipient_room(api: PortalApi, sockets: FakeSocketServer) -> None:
    token, sender = api.register("employer")
    _, recipient = api.register("candidate")
    _connect(sockets, "sid-1", token)

    payload = {"recipient_id": recipient["id"], "message": "Interview tomorrow?", "application_id": "a1"}
    asyncio.run(sockets.handlers["send_message"]("sid-1", payload))
    asyncio.run(sockets.handlers["typing"]("sid-1", {"recipient_id": recipient["id"]}))
    asyncio.run(sockets.handlers["stop_typing"]("sid-1", {"recipient_id": recipient["id"]}))
    asyncio.run(sockets.handlers["send_message"]("sid-1", {"message": "no recipient"}))

    events = [(event, room) for event, _, room, _ in sockets.emitted]
    assert events == [
        ("receive_message", user_room(recipient["id"])),
        ("user_typing", user_room(recipient["id"])),
        ("user_stop_typing", user_room(recipient["id"])),
    ]
    message = sockets.emitted[0][1]
    assert message["sender_id"] == sender["id"]
    assert message["message"] == "Interview tomorrow?"
    assert message["application_id"] == "a1"


def test_banned_user_is_disconnected_on_next_relay(api: PortalApi, sockets: FakeSocketServer) -> None:
    token, user = api.register("candidate")
    _connect(sockets, "sid-1", token)
    api.client.post(f"/api/admin/users/{user['id']}/ban", headers=api.headers(api.admin_token()))

    asyncio.run(sockets.handlers["send_message"]("sid-1", {"recipient_id": "someone", "message": "hi"}))

    assert sockets.emitted == []
    assert sockets.disconnected == ["sid-1"]
