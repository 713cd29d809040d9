# app/repositories/posts.py
import logging
from typing import List, Optional, Sequence

from sqlalchemy import select

from app.models.posts import Post, PostSetMember
from app.repositories.base import DocumentRepository

logger = logging.getLogger(__name__)


class PostRepository(DocumentRepository[Post]):
    model = Post
    member_model = PostSetMember
    set_fields = ("likes", "comments")

    async def create(self, user_id: str, content: str) -> Post:
        logger.info("Creating post for user: %s", user_id)
        return await self.add(Post(user_id=user_id, content=content))

    async def list_by_users(
        self, user_ids: Sequence[str], limit: int, last_id: Optional[str] = None
    ) -> List[Post]:
        """多位作者的貼文，新到舊；last_id 為上一頁最後一筆（不含）"""
        if not user_ids:
            return []
        stmt = select(Post).where(Post.user_id.in_(list(user_ids)))
        if last_id:
            stmt = stmt.where(Post.id < last_id)
        stmt = stmt.order_by(Post.id.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())
