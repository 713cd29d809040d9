# tests/test_presence.py
import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.core.config import settings
from app.core.security import TokenCodec, TokenPayload, TokenType, now_ms
from app.db.session import AsyncSessionLocal
from app.main import app
from app.models.users import User
from app.repositories.users import UserRepository
from app.services.presence import ConnectionRegistry
from conftest import unique_username

WS_PATH = "/api/v1/ws/notifications"


class FakeSocket:
    def __init__(self, broken: bool = False) -> None:
        self.accepted = False
        self.sent = []
        self.broken = broken

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(data)


@pytest.mark.asyncio
async def test_registry_emits_to_every_socket_of_user():
    registry = ConnectionRegistry()
    phone, laptop = FakeSocket(), FakeSocket()
    await registry.connect("u1", phone)
    await registry.connect("u1", laptop)

    assert phone.accepted and laptop.accepted
    assert registry.is_online("u1")
    assert not registry.is_online("u2")

    await registry.emit("u1", "notification", {"id": "n1"})
    assert phone.sent == laptop.sent == [{"type": "notification", "data": {"id": "n1"}}]

    registry.disconnect("u1", phone)
    registry.disconnect("u1", laptop)
    assert not registry.is_online("u1")


@pytest.mark.asyncio
async def test_registry_drops_broken_socket():
    registry = ConnectionRegistry()
    good, broken = FakeSocket(), FakeSocket(broken=True)
    await registry.connect("u1", good)
    await registry.connect("u1", broken)

    await registry.emit("u1", "notification", {"id": "n1"})
    assert good.sent
    await registry.emit("u1", "notification", {"id": "n2"})
    assert len(good.sent) == 2
    assert registry.is_online("u1")


def _access_token_for(verified: bool) -> str:
    async def _create() -> str:
        username = unique_username("socket")
        async with AsyncSessionLocal() as session:
            user = await UserRepository(session).create(
                User(
                    username=username,
                    email=f"{username}@example.com",
                    first_name="Web",
                    last_name="Socket",
                    password_hash="x",
                    password_updated_at=now_ms() - 1000,
                    verified=verified,
                )
            )
        return TokenCodec(settings.SECRET_KEY, settings.JWT_ALGORITHM).generate_token(
            TokenPayload(identity_id=user.id, email=user.email, token_type=TokenType.ACCESS, signed_at=now_ms()),
            settings.ACCESS_TOKEN_EXPIRES_IN,
        )

    return asyncio.run(_create())


def test_socket_requires_token():
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(WS_PATH):
            pass
    assert exc.value.code == 1008


def test_socket_rejects_unverified_user():
    token = _access_token_for(verified=False)
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"{WS_PATH}?token={token}"):
            pass
    assert exc.value.code == 1008


def test_socket_ping_pong():
    token = _access_token_for(verified=True)
    client = TestClient(app)
    with client.websocket_connect(f"{WS_PATH}?token={token}") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        # 其他訊息不回應，連線也不會斷
        ws.send_text("hello")
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
