# app/services/session.py
"""
Session 核心：註冊、登入、登出、每個請求的授權（含 refresh 輪替）、
email 驗證與密碼重設 / 變更。

Session 狀態：
  Unauthenticated -> Authenticated(access 有效)
                  -> Authenticated(access 失效、refresh 有效，自動輪替)
                  -> Revoked（登出 / refresh 失效，需重新登入）
"""
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from app.core.config import Settings
from app.core.errors import Forbidden, InternalError, NotFound, Unauthorized
from app.core.security import (
    CredentialHasher, TokenCodec, TokenError, TokenPayload, TokenType, now_ms,
)
from app.core.validators import is_email, validate_username
from app.models.users import User
from app.repositories.commands import DenylistItem, SetFields
from app.repositories.users import UserRepository
from app.services.background import DetachedTaskRunner
from app.services.mail import (
    MailDeliveryError, MailSender, Recipient,
    email_verification_template, password_reset_template,
)

logger = logging.getLogger(__name__)

INACTIVE_ACCOUNT_MESSAGE = (
    "Your account is inactive. Please verify your email address or contact us to activate your account."
)
STALE_TOKEN_MESSAGE = "Authorization token is not valid anymore"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class AuthContext:
    """授權通過後，該請求的身分"""

    user: User
    access_token: str
    refresh_token: Optional[str] = None
    # 這次請求中 refresh 輪替出的新 token（需回寫 cookie）
    rotated: Optional[TokenPair] = None


class SessionManager:
    def __init__(
        self,
        users: UserRepository,
        codec: TokenCodec,
        hasher: CredentialHasher,
        mailer: MailSender,
        settings: Settings,
        background: DetachedTaskRunner,
        denylist_pruner: Callable[[str], Awaitable[int]],
    ):
        self._users = users
        self._codec = codec
        self._hasher = hasher
        self._mailer = mailer
        self._settings = settings
        self._background = background
        self._denylist_pruner = denylist_pruner

    # === Sign up ===
    async def sign_up(
        self, username: str, password: str, email: str, first_name: str, last_name: str
    ) -> User:
        logger.info("Attempting to sign up user with username %s", username)
        validate_username(username)

        logger.info("Hashing user's password")
        password_hash = await self._hasher.hash_password(password)

        user = await self._users.create(
            User(
                username=username,
                email=email,
                first_name=first_name,
                last_name=last_name,
                password_hash=password_hash,
                password_updated_at=now_ms(),
                verified=False,
            )
        )

        token = self._codec.generate_token(
            TokenPayload(identity_id=user.id, email=user.email, token_type=TokenType.EMAIL_VERIFICATION),
            self._settings.EMAIL_VERIFICATION_TOKEN_EXPIRES_IN,
        )
        logger.info("Sending email verification email to %s", user.email)
        await self._send_mail(
            user,
            "Verify your Email",
            email_verification_template(
                user.first_name, f"{self._settings.FRONTEND_EMAIL_VERIFICATION_URL}?token={token}"
            ),
        )
        return user

    # === Login ===
    async def authenticate(self, identifier: str, password: str) -> Tuple[User, TokenPair]:
        identifier = (identifier or "").strip()
        using_email = is_email(identifier)
        label = f"email {identifier}" if using_email else f"username {identifier}"
        logger.info("Attempting to authenticate user with %s", label)

        if using_email:
            user = await self._users.get_by_email(identifier)
        else:
            user = await self._users.get_by_username(identifier)
        if user is None:
            raise NotFound(f"User with {label} not found")

        # 背景清理過期 denylist，失敗只記 log
        logger.info("Clearing user's expired tokens from denylist")
        self._background.spawn(self._denylist_pruner(user.id), name=f"prune-denylist:{user.id}")

        logger.info("Verifying user's password")
        if not await self._hasher.verify_password(password, user.password_hash):
            raise Unauthorized("Invalid password")

        return user, self._issue_pair(user.id, user.email)

    # === Logout ===
    async def sign_out(self, access_token: Optional[str], refresh_token: Optional[str]) -> None:
        logger.info("Attempting to sign out user by invalidating their tokens")
        access = self._try_verify(access_token, "access")
        refresh = self._try_verify(refresh_token, "refresh")

        identity_id = access.identity_id if access else (refresh.identity_id if refresh else None)
        if not identity_id:
            return

        items = []
        for token, payload in ((access_token, access), (refresh_token, refresh)):
            if payload is not None and payload.identity_id == identity_id and payload.expires_at:
                items.append(DenylistItem(token=token, expires_in=payload.expires_at))
        if not items:
            return

        logger.info("Adding tokens to the user's denylist")
        await self._users.denylist(identity_id, items)

    # === Per-request authorization ===
    async def authorize(
        self,
        access_token: Optional[str],
        refresh_token: Optional[str],
        *,
        allow_unverified: bool = False,
        allow_rotation: bool = True,
        on_rotated: Optional[Callable[[TokenPair], None]] = None,
    ) -> AuthContext:
        logger.info("Attempting to authorize user")

        payload = self._verify_access(access_token)
        rotated: Optional[TokenPair] = None

        if payload is None:
            if not allow_rotation:
                raise Unauthorized("Invalid or expired access token")
            rotated, payload = await self._rotate(refresh_token)
            if on_rotated is not None:
                on_rotated(rotated)
            access_token = rotated.access_token
            refresh_token = rotated.refresh_token

        user = await self._users.get_by_email(payload.email)
        if user is None or user.id != payload.identity_id:
            raise Unauthorized(STALE_TOKEN_MESSAGE)

        # 密碼在 token 簽發後改過，或 token 已被登出
        if (payload.signed_at or 0) < user.password_updated_at or user.is_denylisted(access_token):
            raise Unauthorized(STALE_TOKEN_MESSAGE)

        if not user.verified and not allow_unverified:
            raise Forbidden(INACTIVE_ACCOUNT_MESSAGE)

        return AuthContext(user=user, access_token=access_token, refresh_token=refresh_token, rotated=rotated)

    def _verify_access(self, access_token: Optional[str]) -> Optional[TokenPayload]:
        if not access_token:
            return None
        logger.info("Verifying authorization access token")
        try:
            return self._codec.verify_token(access_token, expected_type=TokenType.ACCESS)
        except TokenError as exc:
            logger.error("Failed to verify access token, %s", exc)
            return None

    async def _rotate(self, refresh_token: Optional[str]) -> Tuple[TokenPair, TokenPayload]:
        """
        用 refresh 換新的一組 token；舊 refresh 先寫進 denylist 才簽新的。
        任何失敗都視為 session 失效：清 cookie、要求重新登入。
        """
        if not refresh_token:
            raise Unauthorized("No refresh token provided", clear_credentials=True)

        logger.info("Attempting to refresh access token")
        try:
            payload = self._codec.verify_token(refresh_token, expected_type=TokenType.REFRESH)
        except TokenError as exc:
            logger.error("Failed to refresh access token, logging out the user: %s", exc)
            raise Unauthorized("Failed to verify refresh token", clear_credentials=True) from exc

        user = await self._users.get_by_email(payload.email)
        if user is None or user.id != payload.identity_id:
            raise Unauthorized("Failed to verify refresh token", clear_credentials=True)
        if (payload.signed_at or 0) < user.password_updated_at:
            raise Unauthorized(STALE_TOKEN_MESSAGE, clear_credentials=True)

        logger.info("Rotating refresh token for user with email %s", user.email)
        consumed = await self._users.consume_token(
            user.id, DenylistItem(token=refresh_token, expires_in=payload.expires_at or int(time.time()))
        )
        if not consumed:
            logger.error("Refresh token reuse detected for user %s", user.id)
            raise Unauthorized("Refresh token has already been used", clear_credentials=True)

        signed_at = now_ms()
        pair = self._issue_pair(user.id, user.email, signed_at)
        return pair, TokenPayload(
            identity_id=user.id, email=user.email, token_type=TokenType.ACCESS, signed_at=signed_at
        )

    # === Email verification ===
    async def verify_email_address(self, token: str) -> None:
        logger.info("Attempting to verify email address")
        try:
            payload = self._codec.verify_token(token, expected_type=TokenType.EMAIL_VERIFICATION)
        except TokenError as exc:
            raise Unauthorized("Failed to verify email address, invalid token") from exc

        user = await self._single_use_target(payload, token, "Failed to verify email address")

        logger.info("Verifying email address for user with email %s", user.email)
        consumed = await self._users.consume_token(
            user.id, DenylistItem(token=token, expires_in=payload.expires_at), verified=True
        )
        if not consumed:
            raise Unauthorized("Failed to verify email address, token is already used")

    # === Password reset / update ===
    async def send_password_reset_link(self, email: str) -> None:
        logger.info("Attempting to send password reset link to %s", email)
        user = await self._users.get_by_email(email)
        if user is None:
            raise NotFound(f"User with email {email} not found")
        if not user.verified:
            raise Forbidden(f"{email} is not verified")

        token = self._codec.generate_token(
            TokenPayload(identity_id=user.id, email=user.email, token_type=TokenType.PASSWORD_RESET),
            self._settings.PASSWORD_RESET_TOKEN_EXPIRES_IN,
        )
        logger.info("Sending password reset email to %s", user.email)
        await self._send_mail(
            user,
            "Reset your password",
            password_reset_template(user.first_name, f"{self._settings.FRONTEND_PASSWORD_RESET_URL}?token={token}"),
        )

    async def reset_password(self, token: str, password: str) -> None:
        logger.info("Attempting to reset password")
        try:
            payload = self._codec.verify_token(token, expected_type=TokenType.PASSWORD_RESET)
        except TokenError as exc:
            raise Unauthorized("Failed to reset password, invalid token") from exc

        user = await self._single_use_target(payload, token, "Failed to reset password")
        if not user.verified:
            raise Forbidden(f"{user.email} is not verified")

        password_hash = await self._hasher.hash_password(password)
        logger.info("Resetting password for user with email %s", user.email)
        consumed = await self._users.consume_token(
            user.id,
            DenylistItem(token=token, expires_in=payload.expires_at),
            password_hash=password_hash,
            password_updated_at=now_ms(),
        )
        if not consumed:
            raise Unauthorized("Failed to reset password, token is already used")

    async def update_password(
        self, user: User, current_password: str, new_password: str, terminate_all_sessions: bool = False
    ) -> User:
        logger.info("Attempting to update password for user with id %s", user.id)
        if not await self._hasher.verify_password(current_password, user.password_hash):
            raise Unauthorized("Current password is incorrect")

        fields = {"password_hash": await self._hasher.hash_password(new_password)}
        if terminate_all_sessions:
            # 之前簽發的 token 全部失效
            fields["password_updated_at"] = now_ms()

        logger.info("Updating password for user with id %s", user.id)
        return await self._users.atomic_update(user.id, SetFields(fields))

    # === helpers ===
    def _issue_pair(self, identity_id: str, email: str, signed_at: Optional[int] = None) -> TokenPair:
        signed_at = signed_at if signed_at is not None else now_ms()
        logger.info("Generating access and refresh tokens")
        access = self._codec.generate_token(
            TokenPayload(identity_id=identity_id, email=email, token_type=TokenType.ACCESS, signed_at=signed_at),
            self._settings.ACCESS_TOKEN_EXPIRES_IN,
        )
        refresh = self._codec.generate_token(
            TokenPayload(identity_id=identity_id, email=email, token_type=TokenType.REFRESH, signed_at=signed_at),
            self._settings.REFRESH_TOKEN_EXPIRES_IN,
        )
        return TokenPair(access_token=access, refresh_token=refresh)

    def _try_verify(self, token: Optional[str], label: str) -> Optional[TokenPayload]:
        if not token:
            return None
        try:
            return self._codec.verify_token(token)
        except TokenError as exc:
            logger.error("Failed to verify %s token, %s", label, exc)
            return None

    async def _single_use_target(self, payload: TokenPayload, token: str, failure: str) -> User:
        user = await self._users.get_by_email(payload.email)
        if user is None or user.id != payload.identity_id:
            raise Unauthorized(f"{failure}, user not found")
        if user.is_denylisted(token):
            raise Unauthorized(f"{failure}, token is already used")
        return user

    async def _send_mail(self, user: User, subject: str, body: str) -> None:
        try:
            await self._mailer.send(Recipient(name=user.first_name, email=user.email), subject, body)
        except MailDeliveryError as exc:
            raise InternalError(f"Failed to send '{subject}' email to {user.email}") from exc
