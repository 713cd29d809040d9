# app/core/errors.py
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.cookies import apply_rotated_tokens, clear_auth_cookies

logger = logging.getLogger(__name__)


# === Domain errors ===
class AppError(Exception):
    """所有業務錯誤的基底；status_code 對應 HTTP 狀態碼"""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class Unauthorized(AppError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized", *, clear_credentials: bool = False):
        super().__init__(message)
        # True 代表 session 已進入 Revoked：回應時一併清掉 cookie
        self.clear_credentials = clear_credentials


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class TooManyRequests(AppError):
    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class InternalError(AppError):
    status_code = 500


def _body(status_code: int, message: str) -> dict:
    return {"status": status_code, "message": message}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        headers = {}
        if isinstance(exc, TooManyRequests):
            headers["Retry-After"] = str(exc.retry_after)
        if isinstance(exc, InternalError):
            # 內部細節只進 log，不回給 client
            logger.error("Internal error on %s: %s", request.url.path, exc.message)
            resp = JSONResponse(status_code=exc.status_code, content=_body(exc.status_code, "Internal server error"))
        else:
            resp = JSONResponse(status_code=exc.status_code, content=_body(exc.status_code, exc.message), headers=headers)
        rotated = getattr(request.state, "rotated_tokens", None)
        if isinstance(exc, Unauthorized) and exc.clear_credentials:
            clear_auth_cookies(resp)
        elif rotated is not None:
            # 授權時已輪替，舊 refresh 作廢，錯誤回應也要帶新 token
            apply_rotated_tokens(resp, rotated.access_token, rotated.refresh_token)
        return resp

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):
        # 統一輸出格式
        return JSONResponse(
            status_code=exc.status_code,
            content=_body(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):
        # 客製化，但保持資訊節制
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content={**_body(422, "Validation error"), "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content=_body(500, "Internal server error"))

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        # 小強化：避免洩露伺服器細節
        resp = await call_next(request)
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        return resp
