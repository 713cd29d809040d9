# app/services/notifications.py
import logging
from typing import List, Optional

from app.core.errors import Forbidden, NotFound
from app.models.notifications import Notification, NotificationAction
from app.repositories.notifications import NotificationRepository
from app.schemas.notification import ActionMetadata, notification_payload
from app.services.presence import ConnectionRegistry

logger = logging.getLogger(__name__)

NOTIFICATION_EVENT = "notification"


def singular_content(action: NotificationAction, content_type: str, brief: Optional[str]) -> str:
    return f"You have a new {action.verb} on your {content_type}: {brief or ''}"


def plural_content(action: NotificationAction, count: int, content_type: str, brief: Optional[str]) -> str:
    return f"You have {count} new {action.plural_verb} on your {content_type}: {brief or ''}"


def content_for(action: NotificationAction, count: int, content_type: str, brief: Optional[str]) -> str:
    if count <= 1:
        return singular_content(action, content_type, brief)
    return plural_content(action, count, content_type, brief)


class NotificationAggregator:
    """
    把同一個目標上的重複行為（讚 / 留言 / 回覆）合併成一則持續更新的通知：
      - 同一行為者重送：不動
      - 未讀：把行為者加進已計入集合，內容改成複數
      - 已讀：重新開始一輪，集合只剩這次的行為者
    撤銷（收回讚、刪留言）時反向操作。
    """

    def __init__(self, notifications: NotificationRepository, presence: ConnectionRegistry):
        self._notifications = notifications
        self._presence = presence

    async def notify_about_follow(self, actor_id: str, following_id: str, follower_username: str) -> None:
        if actor_id == following_id:
            return
        logger.info("Notifying the user with id %s about a follow request", following_id)
        metadata = ActionMetadata(follower_username=follower_username, following_id=following_id)
        notification = await self._notifications.create(
            following_id,
            f"{follower_username} has started following you",
            NotificationAction.FOLLOW_REQUEST,
            metadata.to_store(),
        )
        await self._send_web_notification(following_id, notification)

    async def notify_about_action_on_content(
        self,
        actor_id: str,
        recipient_id: str,
        content_type: str,
        action: NotificationAction,
        metadata: ActionMetadata,
    ) -> Optional[Notification]:
        if actor_id == recipient_id:
            return None

        logger.info(
            "Notifying the user with id %s about a %s on their %s", recipient_id, action.verb, content_type
        )
        notification = await self._notifications.find_by_action_and_target(
            recipient_id, action, post_id=metadata.post_id, comment_id=metadata.comment_id
        )

        if notification is None:
            notification = await self._notifications.create(
                recipient_id,
                singular_content(action, content_type, metadata.content_brief),
                action,
                metadata.to_store(),
            )
        else:
            stored = ActionMetadata.model_validate(notification.action_metadata or {})
            credited = list(stored.action_database_documents)
            new_ids = [i for i in metadata.action_database_documents if i not in credited]
            if not new_ids:
                # 已計入，重送不變
                return notification

            brief = metadata.content_brief or stored.content_brief
            if notification.is_read:
                # 上一輪已讀：重開一輪
                credited = list(dict.fromkeys(metadata.action_database_documents))
            else:
                credited.extend(new_ids)
            new_metadata = stored.model_copy(
                update={"action_database_documents": credited, "content_brief": brief}
            )
            notification = await self._notifications.update(
                notification,
                is_read=False,
                action_metadata=new_metadata.to_store(),
                content=content_for(action, len(credited), content_type, brief),
            )

        await self._send_web_notification(recipient_id, notification)
        return notification

    async def remove_notification_action(
        self,
        actor_id: str,
        recipient_id: str,
        action: NotificationAction,
        metadata: ActionMetadata,
    ) -> None:
        if actor_id == recipient_id or not metadata.action_database_documents:
            return

        logger.info("Removing the notification action for the user with id %s", recipient_id)
        notification = await self._notifications.find_by_action_and_target(
            recipient_id, action, post_id=metadata.post_id, comment_id=metadata.comment_id
        )
        if notification is None:
            return

        stored = ActionMetadata.model_validate(notification.action_metadata or {})
        credited = list(stored.action_database_documents)
        removed_id = metadata.action_database_documents[0]
        if removed_id not in credited:
            return

        if len(credited) == 1:
            await self._notifications.delete(notification.id)
            return

        credited.remove(removed_id)
        new_metadata = stored.model_copy(update={"action_database_documents": credited})
        await self._notifications.update(
            notification,
            action_metadata=new_metadata.to_store(),
            content=content_for(action, len(credited), action.content_type, stored.content_brief),
        )

    async def _send_web_notification(self, user_id: str, notification: Notification) -> None:
        if not self._presence.is_online(user_id):
            return
        logger.info("Sending a web notification to the user with id %s", user_id)
        try:
            await self._presence.emit(user_id, NOTIFICATION_EVENT, notification_payload(notification))
        except Exception as exc:
            # 推播失敗不影響已寫入的通知
            logger.error("Live notification to user %s failed: %r", user_id, exc)


class NotificationService:
    """收件匣：列表與已讀"""

    def __init__(self, notifications: NotificationRepository):
        self._notifications = notifications

    async def list_for_user(self, user_id: str, limit: int, last_id: Optional[str] = None) -> List[Notification]:
        logger.info("Getting notifications for user: %s", user_id)
        return await self._notifications.list_for_user(user_id, limit, last_id)

    async def mark_as_read(self, user_id: str, notification_id: str) -> Notification:
        notification = await self._notifications.get(notification_id)
        if notification is None:
            raise NotFound(f"Notification with Id {notification_id} not found")
        if notification.user_id != user_id:
            raise Forbidden("You can't read someone else's notification")
        if notification.is_read:
            return notification
        # 已讀後，同一目標的新行為會開新的一輪
        return await self._notifications.update(notification, is_read=True)
