# app/api/v1/endpoints/users.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from app.core.deps import get_auth_context, get_file_service, get_pagination, get_user_service
from app.core.validators import validate_object_id
from app.schemas.common import MessageResponse, Pagination
from app.schemas.user import (
    ProfileUpdateRequest, UploadAvatarResponse, UserProfileResponse, UserSummary,
    user_profile_response, user_summary,
)
from app.services.files import FileService
from app.services.session import AuthContext
from app.services.users import UserService

router = APIRouter(tags=["users"])


# === 依 username 取得公開資料 ===
@router.get("/", response_model=UserProfileResponse)
async def get_user_by_username(
    username: str = Query(..., min_length=1),
    _: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    return user_profile_response(await users.get_by_username(username))


@router.get("/search", response_model=List[UserSummary])
async def search_users(
    username_query: str = Query(..., alias="usernameQuery", min_length=1),
    page: Pagination = Depends(get_pagination),
    _: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    found = await users.search(username_query, page.limit, page.last_document_id)
    return [user_summary(u) for u in found]


@router.get("/followers", response_model=List[UserSummary])
async def list_followers(
    user_id: Optional[str] = Query(None, alias="userId"),
    page: Pagination = Depends(get_pagination),
    ctx: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    target = validate_object_id(user_id, "user id") if user_id else ctx.user.id
    found = await users.list_followers(target, page.limit, page.last_document_id)
    return [user_summary(u) for u in found]


@router.get("/followings", response_model=List[UserSummary])
async def list_followings(
    user_id: Optional[str] = Query(None, alias="userId"),
    page: Pagination = Depends(get_pagination),
    ctx: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    target = validate_object_id(user_id, "user id") if user_id else ctx.user.id
    found = await users.list_followings(target, page.limit, page.last_document_id)
    return [user_summary(u) for u in found]


@router.patch("/profile", response_model=UserProfileResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    ctx: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    updated = await users.update_profile(ctx.user, payload.model_dump(exclude_unset=True))
    return user_profile_response(updated)


# === 頭像（multipart 欄位名 avatar；png / jpg / jpeg，500KB 內） ===
@router.post("/avatar", response_model=UploadAvatarResponse)
async def upload_avatar(
    avatar: UploadFile = File(...),
    ctx: AuthContext = Depends(get_auth_context),
    files: FileService = Depends(get_file_service),
):
    try:
        data = await avatar.read()
    finally:
        await avatar.close()
    file_id = await files.upload_avatar(ctx.user, avatar.filename, data)
    return UploadAvatarResponse(file_id=file_id)


@router.delete("/avatar", response_model=MessageResponse)
async def delete_avatar(
    ctx: AuthContext = Depends(get_auth_context),
    files: FileService = Depends(get_file_service),
):
    await files.delete_avatar(ctx.user)
    return MessageResponse(message="Avatar deleted")


@router.get("/{user_id}", response_model=UserProfileResponse)
async def get_user(
    user_id: str,
    _: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    validate_object_id(user_id, "user id")
    return user_profile_response(await users.get_user(user_id))


# === Follow / Unfollow ===
@router.post("/{user_id}/follow", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def follow_user(
    user_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    validate_object_id(user_id, "user id")
    await users.follow(ctx.user, user_id)
    return MessageResponse(message="User followed")


@router.delete("/{user_id}/follow", response_model=MessageResponse)
async def unfollow_user(
    user_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    users: UserService = Depends(get_user_service),
):
    validate_object_id(user_id, "user id")
    await users.unfollow(ctx.user, user_id)
    return MessageResponse(message="User unfollowed")
