# app/core/cookies.py
from typing import Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

from app.core.config import settings

REFRESH_TOKEN_HEADER = "X-Refresh-Token"
ROTATED_ACCESS_HEADER = "X-Access-Token"


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """Access / Refresh 一律以 http-only cookie 下發"""
    response.set_cookie(
        settings.ACCESS_TOKEN_COOKIE, access_token,
        httponly=True, secure=settings.COOKIE_SECURE, samesite="lax",
    )
    response.set_cookie(
        settings.REFRESH_TOKEN_COOKIE, refresh_token,
        httponly=True, secure=settings.COOKIE_SECURE, samesite="lax",
    )


def _drop_issued_tokens(response: Response) -> None:
    # 同一個 response 先前輪替寫入的 token（header 與 Set-Cookie）
    rotated_headers = {ROTATED_ACCESS_HEADER.lower().encode(), REFRESH_TOKEN_HEADER.lower().encode()}
    cookie_names = {settings.ACCESS_TOKEN_COOKIE.encode(), settings.REFRESH_TOKEN_COOKIE.encode()}
    response.raw_headers[:] = [
        (key, value)
        for key, value in response.raw_headers
        if key not in rotated_headers
        and not (key == b"set-cookie" and value.split(b"=", 1)[0] in cookie_names)
    ]


def clear_auth_cookies(response: Response) -> None:
    """登出 / 作廢：蓋掉同一回應中已寫入的新 token，再讓兩個 cookie 過期"""
    _drop_issued_tokens(response)
    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE, httponly=True, secure=settings.COOKIE_SECURE)
    response.delete_cookie(settings.REFRESH_TOKEN_COOKIE, httponly=True, secure=settings.COOKIE_SECURE)


def extract_access_token(conn: HTTPConnection) -> Optional[str]:
    """優先讀 Authorization: Bearer，其次讀 cookie"""
    authorization = conn.headers.get("authorization")
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    return conn.cookies.get(settings.ACCESS_TOKEN_COOKIE) or None


def extract_refresh_token(conn: HTTPConnection) -> Optional[str]:
    token = (conn.headers.get(REFRESH_TOKEN_HEADER) or "").strip()
    if token:
        return token
    return conn.cookies.get(settings.REFRESH_TOKEN_COOKIE) or None


def apply_rotated_tokens(response: Response, access_token: str, refresh_token: str) -> None:
    """refresh 輪替後：新 token 寫回 cookie，並放在 header 給非瀏覽器 client"""
    set_auth_cookies(response, access_token, refresh_token)
    response.headers[ROTATED_ACCESS_HEADER] = access_token
    response.headers[REFRESH_TOKEN_HEADER] = refresh_token
