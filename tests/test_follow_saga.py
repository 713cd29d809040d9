# tests/test_follow_saga.py
import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import InternalError, NotFound, ValidationError
from app.core.security import now_ms
from app.models.users import User
from app.repositories.commands import AppendToSet, RemoveFromSet
from app.repositories.notifications import NotificationRepository
from app.repositories.users import UserRepository
from app.services.notifications import NotificationAggregator
from app.services.users import UserService
from conftest import unique_username

pytestmark = pytest.mark.asyncio


class FlakyUserRepository(UserRepository):
    """指定的 (文件, 指令) 組合一律失敗，模擬第二步寫入出錯"""

    def __init__(self, session, fail_on):
        super().__init__(session)
        self.fail_on = fail_on

    async def apply(self, doc_id, *commands):
        for command in commands:
            if (doc_id, type(command), getattr(command, "field", None)) in self.fail_on:
                raise OperationalError("UPDATE users", {}, Exception("database is locked"))
        return await super().apply(doc_id, *commands)


async def _create_user(users: UserRepository) -> User:
    username = unique_username("saga")
    return await users.create(
        User(
            username=username,
            email=f"{username}@example.com",
            first_name="Saga",
            last_name="Test",
            password_hash="x",
            password_updated_at=now_ms(),
            verified=True,
        )
    )


def _service(users: UserRepository, db, presence) -> UserService:
    notifications = NotificationRepository(db)
    return UserService(users, notifications, NotificationAggregator(notifications, presence))


async def test_follow_and_unfollow(db, presence):
    users = UserRepository(db)
    service = _service(users, db, presence)
    alice, bob = await _create_user(users), await _create_user(users)

    await service.follow(bob, alice.id)
    # 重複追蹤不會重複通知
    await service.follow(bob, alice.id)

    assert (await users.get(bob.id)).followings == [alice.id]
    assert (await users.get(alice.id)).followers == [bob.id]
    assert len(presence.events[alice.id]) == 1

    await service.unfollow(bob, alice.id)
    assert (await users.get(bob.id)).followings == []
    assert (await users.get(alice.id)).followers == []
    assert await NotificationRepository(db).list_for_user(alice.id, 10) == []


async def test_follow_self_or_missing_user(db, presence):
    users = UserRepository(db)
    service = _service(users, db, presence)
    alice = await _create_user(users)

    with pytest.raises(ValidationError):
        await service.follow(alice, alice.id)
    with pytest.raises(NotFound):
        await service.follow(alice, "f" * 24)


async def test_follow_compensates_when_second_write_fails(db, presence):
    plain = UserRepository(db)
    alice, bob = await _create_user(plain), await _create_user(plain)
    flaky = FlakyUserRepository(db, fail_on={(alice.id, AppendToSet, "followers")})
    service = _service(flaky, db, presence)

    with pytest.raises(InternalError):
        await service.follow(bob, alice.id)

    # 第一步已回滾，沒有單邊關係、也沒有通知
    assert (await plain.get(bob.id)).followings == []
    assert (await plain.get(alice.id)).followers == []
    assert presence.events[alice.id] == []


async def test_unfollow_compensates_when_second_write_fails(db, presence):
    plain = UserRepository(db)
    alice, bob = await _create_user(plain), await _create_user(plain)
    await _service(plain, db, presence).follow(bob, alice.id)

    flaky = FlakyUserRepository(db, fail_on={(alice.id, RemoveFromSet, "followers")})
    with pytest.raises(InternalError):
        await _service(flaky, db, presence).unfollow(bob, alice.id)

    assert (await plain.get(bob.id)).followings == [alice.id]
    assert (await plain.get(alice.id)).followers == [bob.id]


async def test_failed_compensation_is_reported(db, presence):
    plain = UserRepository(db)
    alice, bob = await _create_user(plain), await _create_user(plain)
    flaky = FlakyUserRepository(
        db, fail_on={(alice.id, AppendToSet, "followers"), (bob.id, RemoveFromSet, "followings")}
    )

    with pytest.raises(InternalError) as exc:
        await _service(flaky, db, presence).follow(bob, alice.id)
    assert "inconsistent" in exc.value.message
