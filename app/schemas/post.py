# app/schemas/post.py
from datetime import datetime
from typing import List

from app.models.posts import Post
from app.schemas.common import CamelModel
from app.schemas.user import UserSummary, user_summary


class PostContentRequest(CamelModel):
    content: str


class PostResponse(CamelModel):
    id: str
    user: UserSummary
    content: str
    likes: List[str]
    comments: List[str]
    created_at: datetime
    updated_at: datetime


def post_response(post: Post) -> PostResponse:
    return PostResponse(
        id=post.id,
        user=user_summary(post.author),
        content=post.content,
        likes=post.likes,
        comments=post.comments,
        created_at=post.created_at,
        updated_at=post.updated_at,
    )
