# tests/test_users_api.py
import pytest
from httpx import AsyncClient

from conftest import API

pytestmark = pytest.mark.asyncio


async def test_profile_lookup_and_update(client: AsyncClient, make_user):
    alice = await make_user("profile")

    r = await client.get(f"{API}/users/", params={"username": alice["username"].upper()}, headers=alice["headers"])
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["id"] == alice["id"]
    assert "email" not in body

    r = await client.patch(
        f"{API}/users/profile", headers=alice["headers"], json={"bio": "I like long walks", "firstName": "Alice"}
    )
    assert r.status_code == 200, r.text
    assert r.json()["bio"] == "I like long walks"
    assert r.json()["firstName"] == "Alice"
    assert r.json()["lastName"] == "User"

    r = await client.patch(f"{API}/users/profile", headers=alice["headers"], json={"bio": "x" * 201})
    assert r.status_code == 422

    r = await client.get(f"{API}/users/", params={"username": "ghost_user"}, headers=alice["headers"])
    assert r.status_code == 404


async def test_search_by_username_prefix(client: AsyncClient, make_user):
    alice = await make_user("searchme")
    r = await client.get(
        f"{API}/users/search", params={"usernameQuery": alice["username"][:12]}, headers=alice["headers"]
    )
    assert r.status_code == 200
    assert [u["id"] for u in r.json()] == [alice["id"]]

    # LIKE 萬用字元會被跳脫
    r = await client.get(f"{API}/users/search", params={"usernameQuery": "%"}, headers=alice["headers"])
    assert r.json() == []


async def test_follow_validation(client: AsyncClient, make_user):
    alice = await make_user("follower")
    r = await client.post(f"{API}/users/{alice['id']}/follow", headers=alice["headers"])
    assert r.status_code == 400
    r = await client.post(f"{API}/users/{'a' * 24}/follow", headers=alice["headers"])
    assert r.status_code == 404
