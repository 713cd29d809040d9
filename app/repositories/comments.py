# app/repositories/comments.py
import logging
from typing import List, Optional

from sqlalchemy import delete, select

from app.models.comments import Comment, CommentSetMember
from app.repositories.base import DocumentRepository

logger = logging.getLogger(__name__)


class CommentRepository(DocumentRepository[Comment]):
    model = Comment
    member_model = CommentSetMember
    set_fields = ("likes", "replies")

    async def create(self, user_id: str, post_id: str, content: str, reply_to: Optional[str] = None) -> Comment:
        logger.info("Creating comment on post %s for user %s", post_id, user_id)
        return await self.add(Comment(user_id=user_id, post_id=post_id, content=content, reply_to=reply_to))

    async def list_for_post(self, post_id: str, limit: int, last_id: Optional[str] = None) -> List[Comment]:
        """貼文底下的第一層留言，舊到新"""
        stmt = select(Comment).where(Comment.post_id == post_id, Comment.reply_to.is_(None))
        if last_id:
            stmt = stmt.where(Comment.id > last_id)
        stmt = stmt.order_by(Comment.id.asc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_replies(self, comment_id: str, limit: int, last_id: Optional[str] = None) -> List[Comment]:
        stmt = select(Comment).where(Comment.reply_to == comment_id)
        if last_id:
            stmt = stmt.where(Comment.id > last_id)
        stmt = stmt.order_by(Comment.id.asc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def ids_for_post(self, post_id: str) -> List[str]:
        return list((await self.session.execute(select(Comment.id).where(Comment.post_id == post_id))).scalars())

    async def delete_replies(self, comment_id: str) -> List[str]:
        """刪掉留言底下所有回覆，回傳被刪的回覆 id"""
        reply_ids = list(
            (await self.session.execute(select(Comment.id).where(Comment.reply_to == comment_id))).scalars()
        )
        await self._delete_many(reply_ids)
        return reply_ids

    async def delete_for_post(self, post_id: str) -> int:
        return await self._delete_many(await self.ids_for_post(post_id))

    async def _delete_many(self, ids: List[str]) -> int:
        if not ids:
            return 0
        try:
            await self.session.execute(delete(CommentSetMember).where(CommentSetMember.owner_id.in_(ids)))
            # 先刪回覆再刪父留言，避免 reply_to 外鍵擋住
            replies = await self.session.execute(
                delete(Comment).where(Comment.id.in_(ids), Comment.reply_to.is_not(None))
            )
            rest = await self.session.execute(delete(Comment).where(Comment.id.in_(ids)))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return (replies.rowcount or 0) + (rest.rowcount or 0)
