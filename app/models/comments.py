# app/models/comments.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, new_object_id, utcnow
from app.models.users import User


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id", ondelete="CASCADE"), index=True, nullable=False)
    # 只有回覆才有 reply_to；回覆不能再被回覆
    reply_to: Mapped[Optional[str]] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), index=True, nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    author: Mapped[User] = relationship(lazy="selectin")
    set_members: Mapped[List["CommentSetMember"]] = relationship(
        lazy="selectin", order_by="CommentSetMember.id", cascade="all, delete-orphan",
    )

    def _members(self, field: str) -> List[str]:
        return [m.value for m in self.set_members if m.field == field]

    @property
    def likes(self) -> List[str]:
        return self._members("likes")

    @property
    def replies(self) -> List[str]:
        return self._members("replies")


class CommentSetMember(Base):
    __tablename__ = "comment_set_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), index=True, nullable=False
    )
    field: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[str] = mapped_column(String(24), nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "field", "value", name="uq_comment_set_members"),
    )
