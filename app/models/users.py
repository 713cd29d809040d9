# app/models/users.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    BigInteger, Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, new_object_id, utcnow
from app.models.files import File  # noqa: F401  avatar 外鍵指向 files


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    # username / email 一律存小寫，唯一索引即等同不分大小寫
    username: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # epoch ms；早於此時間簽發的 token 全部失效
    password_updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    avatar: Mapped[Optional[str]] = mapped_column(
        String(24), ForeignKey("files.id", ondelete="SET NULL"), nullable=True
    )
    # epoch ms；頭像更新冷卻時間用
    avatar_updated_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    tokens_denylist: Mapped[List["DenylistEntry"]] = relationship(
        back_populates="user", lazy="selectin", order_by="DenylistEntry.id",
        cascade="all, delete-orphan",
    )
    set_members: Mapped[List["UserSetMember"]] = relationship(
        lazy="selectin", order_by="UserSetMember.id", cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("email", name="uq_users_email"),
    )

    def _members(self, field: str) -> List[str]:
        return [m.value for m in self.set_members if m.field == field]

    @property
    def followers(self) -> List[str]:
        return self._members("followers")

    @property
    def followings(self) -> List[str]:
        return self._members("followings")

    @property
    def posts(self) -> List[str]:
        return self._members("posts")

    def is_denylisted(self, token: str) -> bool:
        return any(entry.token == token for entry in self.tokens_denylist)


class DenylistEntry(Base):
    """已被提前作廢、但尚未自然過期的 token"""

    __tablename__ = "user_tokens_denylist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    token: Mapped[str] = mapped_column(String(1024), nullable=False)
    # token 的 exp（epoch 秒），過了就可以清掉
    expires_in: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    user: Mapped[User] = relationship(back_populates="tokens_denylist")

    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_user_tokens_denylist_token"),
    )


class UserSetMember(Base):
    """users 的集合欄位（followers / followings / posts），一列一個成員"""

    __tablename__ = "user_set_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    field: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[str] = mapped_column(String(24), nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "field", "value", name="uq_user_set_members"),
    )
