# tests/conftest.py
import asyncio
import os
import re
import uuid
from collections import defaultdict
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ---- 測試期環境變數（先於 app 載入）----
os.environ["ENV"] = "test"
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("AUTH_HASHING_SALT_ROUNDS", "4")
os.environ.setdefault("COOKIE_SECURE", "true")

from app.main import app  # noqa: E402
from app.core.deps import get_blob_store, get_mail_sender, get_presence  # noqa: E402
from app.db.session import AsyncSessionLocal, engine  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.models import comments, files, notifications, posts, users  # noqa: E402,F401
from app.repositories.users import UserRepository  # noqa: E402
from app.services.storage import BlobNotFound  # noqa: E402

API = "/api/v1"
PASSWORD = "Str0ng!Passw0rd"
_TOKEN_IN_LINK = re.compile(r"token=([A-Za-z0-9_\-\.]+)")


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    """測試前自動 create_all，測試後 drop_all（用 asyncio.run 避免事件圈衝突）。"""
    async def init_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def drop_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    asyncio.run(init_models())
    yield
    asyncio.run(drop_models())


# ---- 假的外部服務 ----
class RecordingMailSender:
    """不寄信，只把信件留在 outbox"""

    def __init__(self) -> None:
        self.outbox: List[Dict[str, Any]] = []

    async def send(self, recipient, subject: str, html_body: str) -> None:
        self.outbox.append({"to": recipient.email, "subject": subject, "body": html_body})

    def sent_to(self, email: str) -> List[Dict[str, Any]]:
        return [m for m in self.outbox if m["to"] == email.lower()]

    def last_token(self, email: str, subject: str) -> str:
        mails = [m for m in self.sent_to(email) if m["subject"] == subject]
        assert mails, f"no '{subject}' mail for {email}"
        return _TOKEN_IN_LINK.search(mails[-1]["body"]).group(1)


class RecordingBlobStore:
    """檔案只存在記憶體，簽名網址用固定假網域"""

    def __init__(self) -> None:
        self.blobs: Dict[str, Any] = {}

    async def put(self, key: str, data: bytes, content_type=None) -> str:
        self.blobs[key] = (data, content_type)
        return f"https://blobs.test/{key}"

    async def get(self, key: str) -> bytes:
        if key not in self.blobs:
            raise BlobNotFound(key)
        return self.blobs[key][0]

    async def delete(self, key: str) -> None:
        self.blobs.pop(key, None)

    async def signed_url(self, key: str, expires_in: int) -> str:
        return f"https://blobs.test/{key}?sig=test"


class RecordingPresence:
    """所有人都視為在線，推播內容記錄下來"""

    def __init__(self) -> None:
        self.events: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    def is_online(self, user_id: str) -> bool:
        return True

    async def emit(self, user_id: str, event: str, payload: Any) -> None:
        self.events[user_id].append({"type": event, "data": payload})


@pytest.fixture
def mailer() -> RecordingMailSender:
    return RecordingMailSender()


@pytest.fixture
def presence() -> RecordingPresence:
    return RecordingPresence()


@pytest.fixture
def blobs() -> RecordingBlobStore:
    return RecordingBlobStore()


@pytest_asyncio.fixture
async def client(mailer, presence, blobs):
    """使用 ASGITransport 直接掛載 app，不需啟動伺服器。"""
    app.dependency_overrides[get_mail_sender] = lambda: mailer
    app.dependency_overrides[get_presence] = lambda: presence
    app.dependency_overrides[get_blob_store] = lambda: blobs
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        # 登入時的背景 denylist 清理要在 loop 關閉前跑完
        await app.state.background.drain()
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def db():
    session = AsyncSessionLocal()
    try:
        yield session
    finally:
        await session.close()


# ---- 帳號建立 ----
def unique_username(prefix: str = "user") -> str:
    return f"{prefix}{uuid.uuid4().hex[:10]}"


def bearer(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


async def signup(client: AsyncClient, prefix: str = "user", password: str = PASSWORD) -> Dict[str, Any]:
    username = unique_username(prefix)
    email = f"{username}@example.com"
    r = await client.post(
        f"{API}/auth/signup",
        json={
            "username": username,
            "email": email,
            "password": password,
            "firstName": "Test",
            "lastName": "User",
        },
    )
    assert r.status_code == 201, r.text
    return {"id": r.json()["id"], "username": username, "email": email, "password": password}


async def login(client: AsyncClient, identifier: str, password: str = PASSWORD) -> Dict[str, str]:
    r = await client.post(f"{API}/auth/login", json={"userIdentifier": identifier, "password": password})
    assert r.status_code == 200, r.text
    tokens = r.json()["tokens"]
    return {"access": tokens["accessToken"], "refresh": tokens["refreshToken"]}


async def mark_verified(user_id: str) -> None:
    from app.repositories.commands import SetFields

    async with AsyncSessionLocal() as session:
        await UserRepository(session).atomic_update(user_id, SetFields({"verified": True}))


@pytest.fixture
def make_user(client):
    """註冊 + 驗證 + 登入，回傳帳號資料與 token"""

    async def _make(prefix: str = "user", verified: bool = True) -> Dict[str, Any]:
        account = await signup(client, prefix)
        if verified:
            await mark_verified(account["id"])
        account.update(await login(client, account["username"]))
        account["headers"] = bearer(account["access"])
        return account

    return _make
