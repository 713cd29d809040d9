# tests/test_ops_and_protected.py
import pytest
from httpx import AsyncClient

from conftest import API

pytestmark = pytest.mark.asyncio


# --- Monitoring & Health ---
async def test_metrics_and_health(client: AsyncClient):
    """測試 /metrics, /healthz, /readyz 都能正確回應"""
    r = await client.get("/metrics")
    assert r.status_code == 200
    assert "# HELP" in r.text  # Prometheus metrics 格式驗證

    r = await client.get("/healthz")
    assert r.status_code == 200
    assert r.json().get("ok") is True

    r = await client.get("/readyz")
    assert r.status_code == 200
    assert r.json().get("ready") is True

    assert r.headers["X-Content-Type-Options"] == "nosniff"


# --- Protected routes ---
@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/posts/"),
        ("GET", "/notifications/"),
        ("GET", "/users/search?usernameQuery=a"),
        ("GET", "/comments/?postId=000000000000000000000000"),
        ("PATCH", "/users/profile"),
    ],
)
async def test_routes_require_auth(client: AsyncClient, method: str, path: str):
    r = await client.request(method, f"{API}{path}")
    assert r.status_code == 401


async def test_protected_route_ok_with_token(client: AsyncClient, make_user):
    alice = await make_user("ops")
    r = await client.get(f"{API}/posts/", headers=alice["headers"])
    assert r.status_code == 200
    assert r.json() == []

    # 分頁參數檢查
    r = await client.get(f"{API}/posts/?limit=0", headers=alice["headers"])
    assert r.status_code == 422
    r = await client.get(f"{API}/posts/?lastDocumentId=xyz", headers=alice["headers"])
    assert r.status_code == 400
