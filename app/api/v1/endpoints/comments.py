# app/api/v1/endpoints/comments.py
from typing import List

from fastapi import APIRouter, Depends, Query, status

from app.core.deps import get_auth_context, get_comment_service, get_pagination
from app.core.validators import validate_object_id
from app.schemas.comment import CommentContentRequest, CommentResponse, comment_response
from app.schemas.common import MessageResponse, Pagination
from app.services.comments import CommentService
from app.services.session import AuthContext

router = APIRouter(tags=["comments"])


# === 貼文的第一層留言，舊到新 ===
@router.get("/", response_model=List[CommentResponse])
async def post_comments(
    post_id: str = Query(..., alias="postId"),
    page: Pagination = Depends(get_pagination),
    _: AuthContext = Depends(get_auth_context),
    comments: CommentService = Depends(get_comment_service),
):
    validate_object_id(post_id, "post id")
    found = await comments.list_for_post(post_id, page.limit, page.last_document_id)
    return [comment_response(c) for c in found]


@router.get("/{comment_id}/replies", response_model=List[CommentResponse])
async def comment_replies(
    comment_id: str,
    page: Pagination = Depends(get_pagination),
    _: AuthContext = Depends(get_auth_context),
    comments: CommentService = Depends(get_comment_service),
):
    validate_object_id(comment_id, "comment id")
    found = await comments.list_replies(comment_id, page.limit, page.last_document_id)
    return [comment_response(c) for c in found]


@router.patch("/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: str,
    payload: CommentContentRequest,
    ctx: AuthContext = Depends(get_auth_context),
    comments: CommentService = Depends(get_comment_service),
):
    validate_object_id(comment_id, "comment id")
    return comment_response(await comments.update(ctx.user, comment_id, payload.content))


@router.delete("/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    comments: CommentService = Depends(get_comment_service),
):
    validate_object_id(comment_id, "comment id")
    await comments.delete(ctx.user, comment_id)
    return MessageResponse(message="Comment deleted")


@router.post("/{comment_id}/like", response_model=MessageResponse)
async def like_comment(
    comment_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    comments: CommentService = Depends(get_comment_service),
):
    validate_object_id(comment_id, "comment id")
    await comments.like(ctx.user, comment_id)
    return MessageResponse(message="Comment liked")


@router.delete("/{comment_id}/like", response_model=MessageResponse)
async def unlike_comment(
    comment_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    comments: CommentService = Depends(get_comment_service),
):
    validate_object_id(comment_id, "comment id")
    await comments.unlike(ctx.user, comment_id)
    return MessageResponse(message="Comment unliked")


@router.post("/{comment_id}/reply", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def reply_to_comment(
    comment_id: str,
    payload: CommentContentRequest,
    ctx: AuthContext = Depends(get_auth_context),
    comments: CommentService = Depends(get_comment_service),
):
    validate_object_id(comment_id, "comment id")
    return comment_response(await comments.reply(ctx.user, comment_id, payload.content))
