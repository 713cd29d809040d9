# app/models/notifications.py
import enum
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, new_object_id, utcnow


class NotificationAction(str, enum.Enum):
    FOLLOW_REQUEST = "follow_request"
    POST_LIKE = "post_like"
    POST_COMMENT = "post_comment"
    COMMENT_LIKE = "comment_like"
    COMMENT_REPLY = "comment_reply"

    @property
    def verb(self) -> str:
        # post_like -> like、comment_reply -> reply
        return self.value.split("_", 1)[1]

    @property
    def plural_verb(self) -> str:
        return "replies" if self.verb == "reply" else f"{self.verb}s"

    @property
    def content_type(self) -> str:
        return self.value.split("_", 1)[0]


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    # 收件者
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    content: Mapped[str] = mapped_column(String(512), nullable=False)
    action: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    action_metadata: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # action_metadata 中用來查詢的欄位另存一份，方便建索引
    post_id: Mapped[Optional[str]] = mapped_column(String(24), index=True, nullable=True)
    comment_id: Mapped[Optional[str]] = mapped_column(String(24), index=True, nullable=True)
    following_id: Mapped[Optional[str]] = mapped_column(String(24), index=True, nullable=True)
    follower_username: Mapped[Optional[str]] = mapped_column(String(30), index=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
