# app/core/security.py
"""
Token 編解碼（TokenCodec）與密碼雜湊（CredentialHasher）。

兩者都是純工具：不碰資料庫，只依賴設定中的 secret / cost。
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from jose import jwt, JWTError, ExpiredSignatureError
from jose.exceptions import JOSEError
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from app.core.errors import InternalError

logger = logging.getLogger(__name__)

MIN_EXPIRY_SECONDS = 15 * 60          # 15 分鐘
MAX_EXPIRY_SECONDS = 48 * 60 * 60     # 48 小時

_UNIT_SECONDS = {"s": 1, "m": 60, "min": 60, "h": 3600, "d": 86400}


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


# === Token errors ===
class TokenError(Exception):
    pass


class InvalidSignature(TokenError):
    pass


class TokenExpired(TokenError):
    pass


class MalformedToken(TokenError):
    pass


class InvalidTokenType(TokenError):
    pass


@dataclass(frozen=True)
class TokenPayload:
    identity_id: str
    email: str
    token_type: TokenType
    signed_at: Optional[int] = None      # epoch ms
    expires_at: Optional[int] = None     # epoch 秒（exp claim）
    issued_at: Optional[int] = None      # epoch 秒（iat claim）


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_expires_in(expires_in: Union[int, str, None]) -> int:
    """
    把 15m / 24h / 2d / 900 轉成秒數，並夾在 [15 分鐘, 48 小時]。
    無法解析時視為下限。
    """
    seconds = 0
    if isinstance(expires_in, bool):
        seconds = 0
    elif isinstance(expires_in, (int, float)):
        seconds = int(expires_in)
    elif isinstance(expires_in, str):
        raw = expires_in.strip().lower()
        # 先比對較長的後綴（min 要先於 m）
        for unit in sorted(_UNIT_SECONDS, key=len, reverse=True):
            if raw.endswith(unit) and raw[: -len(unit)].strip().isdigit():
                seconds = int(raw[: -len(unit)]) * _UNIT_SECONDS[unit]
                break
        else:
            if raw.isdigit():
                seconds = int(raw)
    return max(MIN_EXPIRY_SECONDS, min(seconds, MAX_EXPIRY_SECONDS))


class TokenCodec:
    """簽發 / 驗證 JWT；exp 一律經過 parse_expires_in 夾限"""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self._secret = secret
        self._algorithm = algorithm

    def generate_token(self, payload: TokenPayload, expires_in: Union[int, str]) -> str:
        issued_at = int(time.time())
        claims: Dict[str, Any] = {
            "sub": payload.identity_id,
            "email": payload.email,
            "type": payload.token_type.value,
            "jti": str(uuid4()),
            "iat": issued_at,
            "exp": issued_at + parse_expires_in(expires_in),
        }
        if payload.signed_at is not None:
            claims["signed_at"] = int(payload.signed_at)
        try:
            return jwt.encode(claims, self._secret, algorithm=self._algorithm)
        except JOSEError as exc:
            logger.error("Error signing token: %s", exc)
            raise InternalError("Failed to sign token") from exc

    def verify_token(
        self,
        token: str,
        *,
        expected_type: Optional[TokenType] = None,
        options: Optional[Dict[str, Any]] = None,
        skip_expired_error: bool = False,
    ) -> Optional[TokenPayload]:
        """
        驗證簽章與 exp，回傳 TokenPayload。
          - 簽章不符 / 非 JWT   -> InvalidSignature
          - 已過期             -> TokenExpired（skip_expired_error=True 時改回 None）
          - 必要欄位缺漏        -> MalformedToken
          - 與 expected_type 不符 -> InvalidTokenType
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm], options=options)
        except ExpiredSignatureError as exc:
            if skip_expired_error:
                return None
            raise TokenExpired("Token has expired") from exc
        except JWTError as exc:
            raise InvalidSignature(str(exc) or "Invalid token signature") from exc

        identity_id = claims.get("sub")
        email = claims.get("email")
        raw_type = claims.get("type")
        if not identity_id or not email or not raw_type:
            raise MalformedToken("Token payload is missing required fields")
        try:
            token_type = TokenType(raw_type)
        except ValueError as exc:
            raise MalformedToken(f"Unknown token type: {raw_type}") from exc

        if expected_type is not None and token_type is not expected_type:
            raise InvalidTokenType(f"Expected {expected_type.value} token, got {token_type.value}")

        signed_at = claims.get("signed_at")
        return TokenPayload(
            identity_id=str(identity_id),
            email=str(email),
            token_type=token_type,
            signed_at=int(signed_at) if signed_at is not None else None,
            expires_at=int(claims["exp"]) if claims.get("exp") is not None else None,
            issued_at=int(claims["iat"]) if claims.get("iat") is not None else None,
        )


class CredentialHasher:
    """bcrypt 雜湊；CPU 密集，丟到 threadpool 跑"""

    def __init__(self, rounds: int = 10):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__ident="2b",
            bcrypt__rounds=rounds,
            # 若密碼超過 72 bytes，不拋錯（bcrypt 只吃前 72 bytes）
            bcrypt__truncate_error=False,
        )

    async def hash_password(self, plain: str) -> str:
        try:
            return await run_in_threadpool(self._context.hash, plain)
        except (ValueError, TypeError) as exc:
            logger.error("Password hashing failed: %s", exc)
            raise InternalError("Failed to hash password") from exc

    async def verify_password(self, plain: str, password_hash: str) -> bool:
        try:
            return await run_in_threadpool(self._context.verify, plain, password_hash)
        except (ValueError, TypeError) as exc:
            # 雜湊格式損毀：視為不相符
            logger.error("Password verification failed: %s", exc)
            return False
