# app/api/v1/endpoints/auth.py
from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.core.cookies import clear_auth_cookies, set_auth_cookies
from app.core.deps import get_auth_context_unverified, get_auth_context, get_session_manager
from app.core.errors import TooManyRequests
from app.core.validators import validate_strong_password
from app.schemas.auth import (
    LoginRequest, LoginResponse, PasswordResetRequest, PasswordUpdateRequest,
    SignupRequest, TokenPairResponse,
)
from app.schemas.common import MessageResponse
from app.schemas.user import UserResponse, user_response
from app.services.rate_limit import check_limit_and_hit, reset_success
from app.services.session import AuthContext, SessionManager

router = APIRouter(tags=["auth"])


# === 註冊（不自動登入，需先驗證 email） ===
@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, sessions: SessionManager = Depends(get_session_manager)):
    validate_strong_password(payload.password)
    user = await sessions.sign_up(
        payload.username, payload.password, payload.email, payload.first_name, payload.last_name
    )
    return user_response(user)


# === 登入（含 Redis Rate Limit） ===
@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    sessions: SessionManager = Depends(get_session_manager),
):
    """
    userIdentifier 可以是 email 或 username。
    成功後 access / refresh 以 http-only cookie 下發，body 也附一份給非瀏覽器 client。
    """
    ip = (request.client.host if request.client else "unknown") or "unknown"
    identifier = payload.user_identifier.strip()

    allowed, retry_after = await check_limit_and_hit(ip, identifier)
    if not allowed:
        raise TooManyRequests("Too many login attempts. Please try again later.", retry_after)

    user, tokens = await sessions.authenticate(identifier, payload.password)

    # ✅ 登入成功後清空 identifier+IP 的嘗試（避免誤鎖）
    await reset_success(ip, identifier)

    set_auth_cookies(response, tokens.access_token, tokens.refresh_token)
    return LoginResponse(
        **user_response(user).model_dump(),
        tokens=TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token),
    )


# === 登出：目前的 access / refresh 加入 denylist ===
@router.get("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    ctx: AuthContext = Depends(get_auth_context_unverified),
    sessions: SessionManager = Depends(get_session_manager),
):
    await sessions.sign_out(ctx.access_token, ctx.refresh_token)
    clear_auth_cookies(response)
    return MessageResponse(message="Logged out")


# === Email 驗證 ===
@router.put("/email/verify", response_model=MessageResponse)
async def verify_email(
    token: str = Query(..., min_length=1),
    sessions: SessionManager = Depends(get_session_manager),
):
    await sessions.verify_email_address(token)
    return MessageResponse(message="Email address verified")


# === 忘記密碼 / 重設 / 變更 ===
@router.get("/password", response_model=MessageResponse)
async def request_password_reset(
    email: str = Query(..., min_length=3),
    sessions: SessionManager = Depends(get_session_manager),
):
    await sessions.send_password_reset_link(email)
    return MessageResponse(message="Password reset link sent")


@router.post("/password", response_model=MessageResponse)
async def reset_password(payload: PasswordResetRequest, sessions: SessionManager = Depends(get_session_manager)):
    validate_strong_password(payload.password)
    await sessions.reset_password(payload.token, payload.password)
    return MessageResponse(message="Password has been reset")


@router.put("/password", response_model=MessageResponse)
async def update_password(
    payload: PasswordUpdateRequest,
    response: Response,
    ctx: AuthContext = Depends(get_auth_context),
    sessions: SessionManager = Depends(get_session_manager),
):
    validate_strong_password(payload.new_password)
    await sessions.update_password(
        ctx.user, payload.current_password, payload.new_password, bool(payload.terminate_all_sessions)
    )
    if payload.terminate_all_sessions:
        # 所有 session（含目前這個）都失效
        clear_auth_cookies(response)
    return MessageResponse(message="Password updated")


# === 目前登入者 ===
@router.get("/user", response_model=UserResponse)
async def read_me(ctx: AuthContext = Depends(get_auth_context_unverified)):
    return user_response(ctx.user)
