# tests/test_auth_refresh_edges.py
import time

import pytest
from httpx import AsyncClient
from jose import jwt

from app.core.config import settings
from conftest import API, bearer

pytestmark = pytest.mark.asyncio


def _expired_access(user: dict) -> str:
    """簽一張格式正確、但已過期的 access token"""
    now = int(time.time())
    claims = {
        "sub": user["id"],
        "email": user["email"],
        "type": "access",
        "jti": "expired",
        "signed_at": now * 1000,
        "iat": now - 3600,
        "exp": now - 1,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


async def test_expired_access_is_rotated_with_refresh(client: AsyncClient, make_user):
    alice = await make_user("rotate")
    headers = {**bearer(_expired_access(alice)), "X-Refresh-Token": alice["refresh"]}

    r = await client.get(f"{API}/auth/user", headers=headers)
    assert r.status_code == 200, r.text

    new_access = r.headers["X-Access-Token"]
    new_refresh = r.headers["X-Refresh-Token"]
    assert new_access and new_refresh != alice["refresh"]
    assert "accessToken=" in r.headers.get("set-cookie", "")

    # 新 access 直接可用
    r = await client.get(f"{API}/auth/user", headers=bearer(new_access))
    assert r.status_code == 200


async def test_refresh_token_cannot_be_reused(client: AsyncClient, make_user):
    alice = await make_user("reuse")
    headers = {**bearer(_expired_access(alice)), "X-Refresh-Token": alice["refresh"]}

    r = await client.get(f"{API}/auth/user", headers=headers)
    assert r.status_code == 200

    # 同一張 refresh 再用一次 -> 401，並清掉 cookie
    r = await client.get(f"{API}/auth/user", headers=headers)
    assert r.status_code == 401
    assert r.json()["message"] == "Refresh token has already been used"
    assert 'accessToken=""' in r.headers.get("set-cookie", "")


async def test_access_token_cannot_act_as_refresh(client: AsyncClient, make_user):
    alice = await make_user("wrongtype")
    headers = {**bearer(_expired_access(alice)), "X-Refresh-Token": alice["access"]}
    r = await client.get(f"{API}/auth/user", headers=headers)
    assert r.status_code == 401
    assert r.json()["message"] == "Failed to verify refresh token"


async def test_refresh_malformed_token(client: AsyncClient):
    r = await client.get(f"{API}/auth/user", headers={"X-Refresh-Token": "not.a.jwt"})
    assert r.status_code == 401


async def test_refresh_empty_header(client: AsyncClient):
    r = await client.get(f"{API}/auth/user", headers={"X-Refresh-Token": ""})
    assert r.status_code == 401
    assert r.json()["message"] == "No refresh token provided"


async def test_logout_with_expired_access_does_not_echo_rotated_tokens(client: AsyncClient, make_user):
    alice = await make_user("logoutrot")
    headers = {**bearer(_expired_access(alice)), "X-Refresh-Token": alice["refresh"]}

    r = await client.get(f"{API}/auth/logout", headers=headers)
    assert r.status_code == 200, r.text

    # 輪替出的新 token 已隨登出作廢，不應回給 client
    assert "X-Access-Token" not in r.headers
    assert "X-Refresh-Token" not in r.headers
    cookies = r.headers.get_list("set-cookie")
    access_cookies = [c for c in cookies if c.startswith(f"{settings.ACCESS_TOKEN_COOKIE}=")]
    refresh_cookies = [c for c in cookies if c.startswith(f"{settings.REFRESH_TOKEN_COOKIE}=")]
    assert len(access_cookies) == 1 and access_cookies[0].startswith(f'{settings.ACCESS_TOKEN_COOKIE}=""')
    assert len(refresh_cookies) == 1 and refresh_cookies[0].startswith(f'{settings.REFRESH_TOKEN_COOKIE}=""')

    # 舊 refresh 也不能再換新 token
    r = await client.get(f"{API}/auth/user", headers=headers)
    assert r.status_code == 401
