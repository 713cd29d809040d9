# tests/test_session_manager.py
import pytest

from app.core.config import settings
from app.core.errors import Conflict, Forbidden, InternalError, Unauthorized
from app.core.security import CredentialHasher, TokenCodec
from app.repositories.users import UserRepository
from app.services.background import DetachedTaskRunner
from app.services.mail import MailDeliveryError
from app.services.session import INACTIVE_ACCOUNT_MESSAGE, SessionManager
from conftest import PASSWORD, RecordingMailSender, unique_username

pytestmark = pytest.mark.asyncio


class BrokenMailSender:
    async def send(self, recipient, subject, html_body):
        raise MailDeliveryError("SendGrid is down")


async def _noop_pruner(user_id: str) -> int:
    return 0


@pytest.fixture
def background():
    return DetachedTaskRunner()


def _manager(db, mailer, background) -> SessionManager:
    return SessionManager(
        UserRepository(db),
        TokenCodec(settings.SECRET_KEY, settings.JWT_ALGORITHM),
        CredentialHasher(4),
        mailer,
        settings,
        background,
        denylist_pruner=_noop_pruner,
    )


async def _sign_up(sessions: SessionManager, prefix: str = "sm"):
    username = unique_username(prefix)
    return await sessions.sign_up(username, PASSWORD, f"{username}@example.com", "Session", "Manager")


async def test_sign_up_and_authenticate(db, background):
    mailer = RecordingMailSender()
    sessions = _manager(db, mailer, background)
    user = await _sign_up(sessions)

    assert user.verified is False
    assert user.password_hash != PASSWORD
    assert len(mailer.sent_to(user.email)) == 1

    authed, pair = await sessions.authenticate(user.username.upper(), PASSWORD)
    await background.drain()
    assert authed.id == user.id
    assert pair.access_token != pair.refresh_token

    with pytest.raises(Unauthorized):
        await sessions.authenticate(user.email, "Wr0ng!Passw0rd")
    await background.drain()


async def test_sign_up_conflict(db, background):
    mailer = RecordingMailSender()
    sessions = _manager(db, mailer, background)
    user = await _sign_up(sessions)

    with pytest.raises(Conflict):
        await sessions.sign_up(user.username, PASSWORD, f"x{user.email}", "Again", "User")
    assert len(mailer.outbox) == 1


async def test_mail_failure_is_internal_error(db, background):
    sessions = _manager(db, BrokenMailSender(), background)
    with pytest.raises(InternalError):
        await _sign_up(sessions, "nomail")


async def test_authorize_unverified(db, background):
    sessions = _manager(db, RecordingMailSender(), background)
    user = await _sign_up(sessions)
    _, pair = await sessions.authenticate(user.username, PASSWORD)
    await background.drain()

    with pytest.raises(Forbidden) as exc:
        await sessions.authorize(pair.access_token, pair.refresh_token)
    assert exc.value.message == INACTIVE_ACCOUNT_MESSAGE

    ctx = await sessions.authorize(pair.access_token, pair.refresh_token, allow_unverified=True)
    assert ctx.user.id == user.id
    assert ctx.rotated is None


async def test_rotation_reports_new_pair(db, background):
    sessions = _manager(db, RecordingMailSender(), background)
    user = await _sign_up(sessions)
    _, pair = await sessions.authenticate(user.username, PASSWORD)
    await background.drain()

    seen = []
    ctx = await sessions.authorize(None, pair.refresh_token, allow_unverified=True, on_rotated=seen.append)
    assert ctx.rotated is not None
    assert seen == [ctx.rotated]
    assert ctx.refresh_token == ctx.rotated.refresh_token != pair.refresh_token

    # 不允許輪替時（例如 WebSocket）沒有 access 就直接拒絕
    with pytest.raises(Unauthorized):
        await sessions.authorize(None, ctx.refresh_token, allow_rotation=False)


async def test_sign_out_ignores_foreign_tokens(db, background):
    sessions = _manager(db, RecordingMailSender(), background)
    alice = await _sign_up(sessions, "alice")
    bob = await _sign_up(sessions, "bob")
    _, alice_pair = await sessions.authenticate(alice.username, PASSWORD)
    _, bob_pair = await sessions.authenticate(bob.username, PASSWORD)
    await background.drain()

    # bob 的 refresh 不會被寫進 alice 的 denylist
    await sessions.sign_out(alice_pair.access_token, bob_pair.refresh_token)
    users = UserRepository(db)
    assert (await users.get(alice.id)).is_denylisted(alice_pair.access_token)
    assert not (await users.get(bob.id)).is_denylisted(bob_pair.refresh_token)

    # 沒有任何可用 token：不做事
    await sessions.sign_out(None, "garbage")


async def test_build_session_manager_shares_process_components(db, background):
    from app.core.deps import build_session_manager, get_credential_hasher, get_token_codec

    sessions = build_session_manager(db, background)
    assert sessions._codec is get_token_codec()
    assert sessions._hasher is get_credential_hasher()
    assert sessions._background is background

    # 明確傳入的元件（例如測試的假寄信器）優先
    mailer = RecordingMailSender()
    sessions = build_session_manager(db, background, mailer=mailer)
    assert sessions._mailer is mailer

    username = unique_username("built")
    user = await sessions.sign_up(username, PASSWORD, f"{username}@example.com", "Built", "User")
    assert user.username == username
    assert mailer.sent_to(f"{username}@example.com")
