# tests/test_auth_header_parsing.py
import pytest
from httpx import AsyncClient

from conftest import API

pytestmark = pytest.mark.asyncio


async def test_missing_authorization_header(client: AsyncClient):
    r = await client.get(f"{API}/auth/user")
    assert r.status_code == 401


async def test_malformed_bearer_header(client: AsyncClient):
    # 缺少 'Bearer ' 前綴，也沒有 refresh -> 無法輪替
    r = await client.get(f"{API}/auth/user", headers={"Authorization": "token-only"})
    assert r.status_code == 401
    assert r.json()["message"] == "No refresh token provided"


async def test_garbage_bearer_token(client: AsyncClient):
    r = await client.get(f"{API}/auth/user", headers={"Authorization": "Bearer not.a.jwt"})
    assert r.status_code == 401


async def test_bearer_header_preferred_over_cookie(client: AsyncClient, make_user):
    alice = await make_user("alice")
    # cookie 裡放垃圾，header 正確 -> 以 header 為準
    client.cookies.set("accessToken", "garbage")
    try:
        r = await client.get(f"{API}/auth/user", headers=alice["headers"])
    finally:
        client.cookies.clear()
    assert r.status_code == 200, r.text
    assert r.json()["id"] == alice["id"]
