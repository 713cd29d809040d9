# app/schemas/notification.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from app.models.notifications import Notification
from app.schemas.common import CamelModel


class ActionMetadata(CamelModel):
    # 已計入這則通知的行為者 id（按讚者 user id、留言 / 回覆 id）
    action_database_documents: List[str] = Field(default_factory=list)
    follower_username: Optional[str] = None
    following_id: Optional[str] = None
    post_id: Optional[str] = None
    comment_id: Optional[str] = None
    content_brief: Optional[str] = None

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class NotificationResponse(CamelModel):
    id: str
    user: str
    content: str
    action: str
    action_metadata: ActionMetadata
    is_read: bool
    created_at: datetime
    updated_at: datetime


def notification_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        user=notification.user_id,
        content=notification.content,
        action=notification.action,
        action_metadata=ActionMetadata.model_validate(notification.action_metadata or {}),
        is_read=notification.is_read,
        created_at=notification.created_at,
        updated_at=notification.updated_at,
    )


def notification_payload(notification: Notification) -> Dict[str, Any]:
    """WebSocket 推播用的 JSON"""
    return notification_response(notification).model_dump(mode="json", by_alias=True)
