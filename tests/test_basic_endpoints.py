# tests/test_basic_endpoints.py
import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def test_health(client: AsyncClient):
    r = await client.get("/api/v1/health/")
    assert r.status_code == 200
    data = r.json()
    assert data == {"status": "ok", "database": "ok"}

    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["env"] == "test"


async def test_current_user_unauthorized(client: AsyncClient):
    r = await client.get("/api/v1/auth/user")
    assert r.status_code == 401
    assert r.json()["status"] == 401


async def test_unknown_route_uses_error_body(client: AsyncClient):
    r = await client.get("/api/v1/nope")
    assert r.status_code == 404
    assert set(r.json()) >= {"status", "message"}
