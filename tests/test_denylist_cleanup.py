# tests/test_denylist_cleanup.py
import time

import pytest

from app.core.security import now_ms
from app.models.users import User
from app.repositories.commands import DenylistItem
from app.repositories.users import UserRepository
from app.services.denylist_cleanup import cleanup_expired_denylist, prune_user_denylist
from app.services.scheduler import run_cleanup_job
from conftest import unique_username

pytestmark = pytest.mark.asyncio


async def _user_with_denylist(users: UserRepository) -> User:
    username = unique_username("deny")
    user = await users.create(
        User(
            username=username,
            email=f"{username}@example.com",
            first_name="Deny",
            last_name="List",
            password_hash="x",
            password_updated_at=now_ms(),
            verified=True,
        )
    )
    now = int(time.time())
    await users.denylist(
        user.id,
        [DenylistItem(token=f"expired-{username}", expires_in=now - 60),
         DenylistItem(token=f"live-{username}", expires_in=now + 3600)],
    )
    return user


async def test_consume_token_is_single_use(db):
    users = UserRepository(db)
    user = await _user_with_denylist(users)
    item = DenylistItem(token="one-time", expires_in=int(time.time()) + 60)

    assert await users.consume_token(user.id, item, verified=False) is True
    assert await users.consume_token(user.id, item, verified=True) is False
    # 第二次沒有套用任何欄位
    assert (await users.get(user.id)).verified is False


async def test_prune_user_denylist(db):
    users = UserRepository(db)
    user = await _user_with_denylist(users)

    assert await prune_user_denylist(user.id) == 1
    refreshed = await users.get(user.id)
    assert [e.token for e in refreshed.tokens_denylist] == [f"live-{user.username}"]


async def test_cleanup_expired_for_all_users(db):
    users = UserRepository(db)
    first = await _user_with_denylist(users)
    second = await _user_with_denylist(users)

    assert await cleanup_expired_denylist(db) >= 2
    for user in (first, second):
        assert not (await users.get(user.id)).is_denylisted(f"expired-{user.username}")
        assert (await users.get(user.id)).is_denylisted(f"live-{user.username}")

    # 排程作業本身：沒東西可刪也正常結束
    assert await run_cleanup_job() == 0
