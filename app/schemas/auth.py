# app/schemas/auth.py
from typing import Optional

from pydantic import EmailStr, Field

from app.schemas.common import CamelModel
from app.schemas.user import UserResponse


class SignupRequest(CamelModel):
    username: str = Field(min_length=2, max_length=30)
    email: EmailStr
    # 僅用於建立帳號的輸入，不會在輸出 schema 中出現
    password: str
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)


class LoginRequest(CamelModel):
    user_identifier: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(UserResponse):
    tokens: TokenPairResponse


class PasswordResetRequest(CamelModel):
    token: str
    password: str


class PasswordUpdateRequest(CamelModel):
    current_password: str
    new_password: str
    terminate_all_sessions: Optional[bool] = False
