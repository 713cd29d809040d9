# tests/test_token_codec.py
import time

import pytest
from jose import jwt

from app.core.errors import InternalError
from app.core.security import (
    MAX_EXPIRY_SECONDS, MIN_EXPIRY_SECONDS, CredentialHasher, InvalidSignature,
    InvalidTokenType, MalformedToken, TokenCodec, TokenExpired, TokenPayload, TokenType,
    parse_expires_in,
)

SECRET = "unit-test-secret-unit-test-secret"


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(SECRET)


def _payload(token_type: TokenType = TokenType.ACCESS, **kwargs) -> TokenPayload:
    return TokenPayload(identity_id="64b7f0c2a1b2c3d4e5f60718", email="a@example.com", token_type=token_type, **kwargs)


def test_generate_and_verify(codec: TokenCodec):
    token = codec.generate_token(_payload(signed_at=1_700_000_000_000), "1h")
    payload = codec.verify_token(token, expected_type=TokenType.ACCESS)

    assert payload.identity_id == "64b7f0c2a1b2c3d4e5f60718"
    assert payload.email == "a@example.com"
    assert payload.signed_at == 1_700_000_000_000
    assert payload.expires_at - payload.issued_at == 3600


def test_tokens_are_unique_even_within_same_second(codec: TokenCodec):
    assert codec.generate_token(_payload(), "1h") != codec.generate_token(_payload(), "1h")


def test_expiry_is_clamped(codec: TokenCodec):
    short = codec.verify_token(codec.generate_token(_payload(), "10s"))
    long = codec.verify_token(codec.generate_token(_payload(), "30d"))
    assert short.expires_at - short.issued_at == MIN_EXPIRY_SECONDS
    assert long.expires_at - long.issued_at == MAX_EXPIRY_SECONDS


@pytest.mark.parametrize(
    "raw,seconds",
    [
        ("15m", 900),
        ("20min", 1200),
        ("24h", 86400),
        ("2d", 172800),
        ("3600", 3600),
        (7200, 7200),
        ("1s", MIN_EXPIRY_SECONDS),
        ("7d", MAX_EXPIRY_SECONDS),
        ("soon", MIN_EXPIRY_SECONDS),
        (None, MIN_EXPIRY_SECONDS),
    ],
)
def test_parse_expires_in(raw, seconds):
    assert parse_expires_in(raw) == seconds


def test_wrong_secret_is_invalid_signature(codec: TokenCodec):
    token = TokenCodec("another-secret-another-secret-xx").generate_token(_payload(), "1h")
    with pytest.raises(InvalidSignature):
        codec.verify_token(token)


def test_garbage_is_invalid_signature(codec: TokenCodec):
    with pytest.raises(InvalidSignature):
        codec.verify_token("not.a.jwt")


def test_expired_token(codec: TokenCodec):
    now = int(time.time())
    token = jwt.encode(
        {"sub": "x", "email": "a@example.com", "type": "access", "iat": now - 10, "exp": now - 5},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenExpired):
        codec.verify_token(token)
    assert codec.verify_token(token, skip_expired_error=True) is None


def test_missing_claims_are_malformed(codec: TokenCodec):
    token = jwt.encode({"sub": "x", "exp": int(time.time()) + 60}, SECRET, algorithm="HS256")
    with pytest.raises(MalformedToken):
        codec.verify_token(token)


def test_unknown_type_is_malformed(codec: TokenCodec):
    token = jwt.encode(
        {"sub": "x", "email": "a@example.com", "type": "admin", "exp": int(time.time()) + 60},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(MalformedToken):
        codec.verify_token(token)


def test_type_mismatch(codec: TokenCodec):
    token = codec.generate_token(_payload(TokenType.REFRESH), "24h")
    with pytest.raises(InvalidTokenType):
        codec.verify_token(token, expected_type=TokenType.ACCESS)


def test_unsupported_algorithm_fails_signing():
    with pytest.raises(InternalError):
        TokenCodec(SECRET, algorithm="NOPE").generate_token(_payload(), "1h")


@pytest.mark.asyncio
async def test_credential_hasher():
    hasher = CredentialHasher(rounds=4)
    hashed = await hasher.hash_password("Str0ng!Passw0rd")

    assert hashed.startswith("$2b$04$")
    assert await hasher.verify_password("Str0ng!Passw0rd", hashed)
    assert not await hasher.verify_password("wrong", hashed)
    # 雜湊格式損毀視為不相符
    assert not await hasher.verify_password("Str0ng!Passw0rd", "not-a-hash")
