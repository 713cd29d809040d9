# app/schemas/comment.py
from datetime import datetime
from typing import List, Optional

from app.models.comments import Comment
from app.schemas.common import CamelModel
from app.schemas.user import UserSummary, user_summary


class CommentContentRequest(CamelModel):
    content: str


class CommentResponse(CamelModel):
    id: str
    user: UserSummary
    post: str
    content: str
    likes: List[str]
    replies: List[str]
    reply_to: Optional[str] = None
    created_at: datetime
    updated_at: datetime


def comment_response(comment: Comment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        user=user_summary(comment.author),
        post=comment.post_id,
        content=comment.content,
        likes=comment.likes,
        replies=comment.replies,
        reply_to=comment.reply_to,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
    )
