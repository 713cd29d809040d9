# app/repositories/users.py
import logging
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from app.core.errors import Conflict, NotFound
from app.models.users import DenylistEntry, User, UserSetMember
from app.repositories.base import DocumentRepository
from app.repositories.commands import AppendToSet, Command, DenylistItem, SetFields, UpdateOutcome

logger = logging.getLogger(__name__)

DENYLIST_FIELD = "tokens_denylist"


class UserRepository(DocumentRepository[User]):
    model = User
    member_model = UserSetMember
    set_fields = ("followers", "followings", "posts", DENYLIST_FIELD)

    async def create(self, user: User) -> User:
        """寫入新使用者；email / username 唯一鍵衝突轉成 Conflict"""
        user.username = user.username.lower()
        user.email = user.email.lower()
        logger.info("Creating user with username: %s", user.username)
        try:
            return await self.add(user)
        except IntegrityError as exc:
            detail = str(exc.orig).lower()
            if "uq_users_email" in detail or "users.email" in detail:
                raise Conflict("Email is already taken") from exc
            if "uq_users_username" in detail or "users.username" in detail:
                raise Conflict("Username is already taken") from exc
            raise

    async def get_by_email(self, email: str) -> Optional[User]:
        stmt = (
            select(User)
            .where(User.email == email.strip().lower())
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_by_username(self, username: str) -> Optional[User]:
        stmt = (
            select(User)
            .where(User.username == username.strip().lower())
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def atomic_update(self, user_id: str, *commands: Command) -> User:
        outcome = await self.apply(user_id, *commands)
        if not outcome.matched:
            raise NotFound(f"User with Id {user_id} not found")
        return await self.get(user_id)

    # ---- denylist ----
    def _member_row(self, doc_id, field, value):
        if field == DENYLIST_FIELD:
            if not isinstance(value, DenylistItem):
                raise ValueError("tokens_denylist only accepts DenylistItem values")
            return DenylistEntry, {"user_id": doc_id, "token": value.token, "expires_in": value.expires_in}
        return super()._member_row(doc_id, field, value)

    def _member_key(self, row):
        if "token" in row:
            return {"user_id": row["user_id"], "token": row["token"]}
        return row

    async def consume_token(self, user_id: str, item: DenylistItem, **fields) -> bool:
        """
        單次使用的 token：先寫入 denylist，寫入成功才套用其餘欄位。
        token 已在 denylist（被用過）時回傳 False，什麼都不改。
        """
        try:
            stmt = (
                self._insert(DenylistEntry)
                .values(user_id=user_id, token=item.token, expires_in=item.expires_in)
                .on_conflict_do_nothing()
            )
            result = await self.session.execute(stmt)
            if not result.rowcount:
                await self.session.commit()
                return False
            if fields:
                await self._execute(user_id, SetFields(fields), UpdateOutcome())
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return True

    async def denylist(self, user_id: str, items: Sequence[DenylistItem]) -> None:
        """一次把多個 token 加入 denylist（單一交易）"""
        await self.apply(user_id, *[AppendToSet(DENYLIST_FIELD, item) for item in items])

    async def prune_denylist(self, user_id: str, now_s: int) -> int:
        try:
            result = await self.session.execute(
                delete(DenylistEntry).where(
                    DenylistEntry.user_id == user_id, DenylistEntry.expires_in < now_s
                )
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount or 0

    async def delete_expired_denylist(self, now_s: int) -> int:
        try:
            result = await self.session.execute(
                delete(DenylistEntry).where(DenylistEntry.expires_in < now_s)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount or 0

    # ---- 列表 ----
    async def list_by_ids(self, ids: Sequence[str], limit: int, last_id: Optional[str] = None) -> List[User]:
        if not ids:
            return []
        stmt = select(User).where(User.id.in_(list(ids)))
        if last_id:
            stmt = stmt.where(User.id < last_id)
        stmt = stmt.order_by(User.id.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def search_by_username(self, query: str, limit: int, last_id: Optional[str] = None) -> List[User]:
        prefix = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = select(User).where(func.lower(User.username).like(f"{prefix}%", escape="\\"))
        if last_id:
            stmt = stmt.where(User.id < last_id)
        stmt = stmt.order_by(User.id.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())
