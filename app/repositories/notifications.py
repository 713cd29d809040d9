# app/repositories/notifications.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from app.models.notifications import Notification, NotificationAction
from app.repositories.base import DocumentRepository

logger = logging.getLogger(__name__)

# action_metadata 中另外建了欄位的 key
_TARGET_COLUMNS = ("post_id", "comment_id", "following_id", "follower_username")


class NotificationRepository(DocumentRepository[Notification]):
    model = Notification

    async def create(
        self, user_id: str, content: str, action: NotificationAction, action_metadata: Dict[str, Any]
    ) -> Notification:
        logger.info("Creating the notification for user: %s", user_id)
        notification = Notification(
            user_id=user_id,
            content=content,
            action=action.value,
            action_metadata=dict(action_metadata),
            is_read=False,
            **{key: action_metadata.get(key) for key in _TARGET_COLUMNS},
        )
        return await self.add(notification)

    async def find_by_action_and_target(
        self,
        user_id: str,
        action: NotificationAction,
        post_id: Optional[str] = None,
        comment_id: Optional[str] = None,
    ) -> Optional[Notification]:
        """同一個 (action, 目標) 只會有一筆通知；貼文的讚與其留言的讚是不同目標"""
        stmt = select(Notification).where(
            Notification.user_id == user_id,
            Notification.action == action.value,
            Notification.post_id == post_id if post_id else Notification.post_id.is_(None),
            Notification.comment_id == comment_id if comment_id else Notification.comment_id.is_(None),
        )
        stmt = stmt.order_by(Notification.id.desc()).limit(1).execution_options(populate_existing=True)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def update(self, notification: Notification, **values: Any) -> Notification:
        logger.info("Updating notification with id: %s", notification.id)
        for key, value in values.items():
            setattr(notification, key, value)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return notification

    async def delete_by_target_metadata(self, **partial: Optional[str]) -> int:
        """
        刪除符合所有給定欄位的通知，例如
          (follower_username=..., following_id=...) 或 (post_id=...) 或 (comment_id=...)
        """
        criteria = []
        for key, value in partial.items():
            if key not in _TARGET_COLUMNS:
                raise ValueError(f"Unsupported notification target field: {key}")
            if value:
                criteria.append(getattr(Notification, key) == value)
        if not criteria:
            return 0
        logger.info("Deleting notifications with metadata: %s", partial)
        try:
            result = await self.session.execute(delete(Notification).where(*criteria))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount or 0

    async def delete_for_comments(self, comment_ids: List[str]) -> int:
        """一次刪掉指向多則留言的通知（連帶刪除的回覆用）"""
        if not comment_ids:
            return 0
        logger.info("Deleting notifications of %s comments", len(comment_ids))
        try:
            result = await self.session.execute(
                delete(Notification).where(Notification.comment_id.in_(comment_ids))
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount or 0

    async def list_for_user(self, user_id: str, limit: int, last_id: Optional[str] = None) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if last_id:
            stmt = stmt.where(Notification.id < last_id)
        stmt = stmt.order_by(Notification.id.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())
