# app/api/v1/endpoints/posts.py
from typing import List

from fastapi import APIRouter, Depends, status

from app.core.deps import get_auth_context, get_pagination, get_post_service
from app.core.validators import validate_object_id
from app.schemas.comment import CommentContentRequest, CommentResponse, comment_response
from app.schemas.common import MessageResponse, Pagination
from app.schemas.post import PostContentRequest, PostResponse, post_response
from app.services.posts import PostService
from app.services.session import AuthContext

router = APIRouter(tags=["posts"])


# === 動態牆：追蹤中的人的貼文，新到舊 ===
@router.get("/", response_model=List[PostResponse])
async def timeline(
    page: Pagination = Depends(get_pagination),
    ctx: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    found = await posts.timeline(ctx.user, page.limit, page.last_document_id)
    return [post_response(p) for p in found]


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def submit_post(
    payload: PostContentRequest,
    ctx: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    return post_response(await posts.submit(ctx.user, payload.content))


@router.get("/user/{user_id}", response_model=List[PostResponse])
async def user_posts(
    user_id: str,
    page: Pagination = Depends(get_pagination),
    _: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    validate_object_id(user_id, "user id")
    found = await posts.list_user_posts(user_id, page.limit, page.last_document_id)
    return [post_response(p) for p in found]


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: str,
    _: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    validate_object_id(post_id, "post id")
    return post_response(await posts.get_post(post_id))


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: str,
    payload: PostContentRequest,
    ctx: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    validate_object_id(post_id, "post id")
    return post_response(await posts.update(ctx.user, post_id, payload.content))


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    validate_object_id(post_id, "post id")
    await posts.delete(ctx.user, post_id)
    return MessageResponse(message="Post deleted")


# === 讚 ===
@router.post("/{post_id}/like", response_model=MessageResponse)
async def like_post(
    post_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    validate_object_id(post_id, "post id")
    await posts.like(ctx.user, post_id)
    return MessageResponse(message="Post liked")


@router.delete("/{post_id}/like", response_model=MessageResponse)
async def unlike_post(
    post_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    validate_object_id(post_id, "post id")
    await posts.unlike(ctx.user, post_id)
    return MessageResponse(message="Post unliked")


# === 留言 ===
@router.post("/{post_id}/comment", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def comment_on_post(
    post_id: str,
    payload: CommentContentRequest,
    ctx: AuthContext = Depends(get_auth_context),
    posts: PostService = Depends(get_post_service),
):
    validate_object_id(post_id, "post id")
    return comment_response(await posts.comment(ctx.user, post_id, payload.content))
