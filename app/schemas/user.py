# app/schemas/user.py
from typing import List, Optional

from pydantic import Field

from app.models.users import User
from app.schemas.common import CamelModel


class UserSummary(CamelModel):
    id: str
    username: str
    first_name: str
    last_name: str


class UserProfileResponse(UserSummary):
    bio: Optional[str] = None
    # 頭像的 file id
    avatar: Optional[str] = None
    followers: List[str] = []
    followings: List[str] = []
    posts: List[str] = []


class UserResponse(UserProfileResponse):
    """本人看得到的完整資料（含 email / verified）"""

    email: str
    verified: bool


class UploadAvatarResponse(CamelModel):
    file_id: str


class ProfileUpdateRequest(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    bio: Optional[str] = Field(None, max_length=200)


def user_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, username=user.username, first_name=user.first_name, last_name=user.last_name)


def user_profile_response(user: User) -> UserProfileResponse:
    return UserProfileResponse(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        bio=user.bio,
        avatar=user.avatar,
        followers=user.followers,
        followings=user.followings,
        posts=user.posts,
    )


def user_response(user: User) -> UserResponse:
    return UserResponse(
        **user_profile_response(user).model_dump(),
        email=user.email,
        verified=user.verified,
    )
