# tests/test_notifications_api.py
import pytest
from httpx import AsyncClient

from conftest import API

pytestmark = pytest.mark.asyncio

POST_TEXT = "A post that will collect a couple of likes"


async def _liked_post(client: AsyncClient, owner: dict, *likers: dict) -> str:
    r = await client.post(f"{API}/posts/", headers=owner["headers"], json={"content": POST_TEXT})
    post_id = r.json()["id"]
    for liker in likers:
        r = await client.post(f"{API}/posts/{post_id}/like", headers=liker["headers"])
        assert r.status_code == 200, r.text
    return post_id


async def test_list_and_mark_as_read(client: AsyncClient, make_user, presence):
    alice = await make_user("inbox")
    bob = await make_user("fan")
    carol = await make_user("fan")
    post_id = await _liked_post(client, alice, bob)

    r = await client.get(f"{API}/notifications/", headers=alice["headers"])
    [notification] = r.json()
    assert notification["isRead"] is False
    assert notification["user"] == alice["id"]
    assert notification["actionMetadata"]["postId"] == post_id
    # 推播內容與收件匣一致
    assert presence.events[alice["id"]][-1]["data"]["id"] == notification["id"]

    r = await client.patch(f"{API}/notifications/{notification['id']}/read", headers=alice["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["isRead"] is True

    # 別人的通知不能標記
    r = await client.patch(f"{API}/notifications/{notification['id']}/read", headers=bob["headers"])
    assert r.status_code == 403
    r = await client.patch(f"{API}/notifications/{'0' * 24}/read", headers=alice["headers"])
    assert r.status_code == 404
    r = await client.patch(f"{API}/notifications/bogus/read", headers=alice["headers"])
    assert r.status_code == 400

    # 已讀後新的讚 -> 同一則通知重新變成未讀、只算新的人
    await client.post(f"{API}/posts/{post_id}/like", headers=carol["headers"])
    [notification] = (await client.get(f"{API}/notifications/", headers=alice["headers"])).json()
    assert notification["isRead"] is False
    assert notification["actionMetadata"]["actionDatabaseDocuments"] == [carol["id"]]
    assert notification["content"] == f"You have a new like on your post: {POST_TEXT}"


async def test_notifications_are_paginated_newest_first(client: AsyncClient, make_user):
    alice = await make_user("popular")
    fans = [await make_user("fan") for _ in range(3)]
    for fan in fans:
        r = await client.post(f"{API}/users/{alice['id']}/follow", headers=fan["headers"])
        assert r.status_code == 200

    r = await client.get(f"{API}/notifications/?limit=2", headers=alice["headers"])
    page = r.json()
    assert [n["actionMetadata"]["followerUsername"] for n in page] == [fans[2]["username"], fans[1]["username"]]

    r = await client.get(
        f"{API}/notifications/?limit=2&lastDocumentId={page[-1]['id']}", headers=alice["headers"]
    )
    assert [n["actionMetadata"]["followerUsername"] for n in r.json()] == [fans[0]["username"]]
