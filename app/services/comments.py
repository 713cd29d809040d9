# app/services/comments.py
import logging
from datetime import timedelta
from typing import List, Optional

from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.validators import validate_length
from app.models.base import as_utc, utcnow
from app.models.comments import Comment
from app.models.notifications import NotificationAction
from app.models.users import User
from app.repositories.commands import AppendToSet, RemoveFromSet, SetFields
from app.repositories.comments import CommentRepository
from app.repositories.notifications import NotificationRepository
from app.repositories.posts import PostRepository
from app.schemas.notification import ActionMetadata
from app.services.notifications import NotificationAggregator
from app.services.posts import COMMENT_MAX_LENGTH, COMMENT_MIN_LENGTH
from app.services.text import truncate_value

logger = logging.getLogger(__name__)

COMMENT_EDIT_WINDOW = timedelta(minutes=30)


class CommentService:
    def __init__(
        self,
        comments: CommentRepository,
        posts: PostRepository,
        notifications: NotificationRepository,
        aggregator: NotificationAggregator,
    ):
        self._comments = comments
        self._posts = posts
        self._notifications = notifications
        self._aggregator = aggregator

    async def get_comment(self, comment_id: str) -> Comment:
        comment = await self._comments.get(comment_id)
        if comment is None:
            raise NotFound(f"Comment with Id {comment_id} not found")
        return comment

    async def list_for_post(self, post_id: str, limit: int, last_id: Optional[str] = None) -> List[Comment]:
        logger.info("Getting comments of post %s", post_id)
        return await self._comments.list_for_post(post_id, limit, last_id)

    async def list_replies(self, comment_id: str, limit: int, last_id: Optional[str] = None) -> List[Comment]:
        logger.info("Getting replies of comment %s", comment_id)
        return await self._comments.list_replies(comment_id, limit, last_id)

    async def update(self, user: User, comment_id: str, content: str) -> Comment:
        validate_length(content, "Comment content", COMMENT_MIN_LENGTH, COMMENT_MAX_LENGTH)
        logger.info("Attempting to update the comment: %s", comment_id)

        comment = await self.get_comment(comment_id)
        if comment.user_id != user.id:
            raise Forbidden("You can't update someone else's comment")
        if utcnow() - as_utc(comment.created_at) > COMMENT_EDIT_WINDOW:
            raise ValidationError("You can't update a comment after 30 minutes of submission")

        await self._comments.apply(comment_id, SetFields({"content": content}))
        return await self.get_comment(comment_id)

    async def delete(self, user: User, comment_id: str) -> None:
        user_id = user.id
        logger.info("Attempting to delete the comment: %s", comment_id)

        comment = await self.get_comment(comment_id)
        if comment.user_id != user_id:
            raise Forbidden("You can't delete someone else's comment")
        post_id, parent_id = comment.post_id, comment.reply_to
        reply_ids: List[str] = []

        if parent_id:
            parent = await self._comments.get(parent_id)
            await self._comments.apply(parent_id, RemoveFromSet("replies", comment_id))
            await self._comments.delete(comment_id)
            if parent is not None:
                await self._aggregator.remove_notification_action(
                    user_id,
                    parent.user_id,
                    NotificationAction.COMMENT_REPLY,
                    ActionMetadata(action_database_documents=[comment_id], post_id=post_id, comment_id=parent_id),
                )
        else:
            post = await self._posts.get(post_id)
            await self._posts.apply(post_id, RemoveFromSet("comments", comment_id))
            reply_ids = await self._comments.delete_replies(comment_id)
            await self._comments.delete(comment_id)
            if post is not None:
                await self._aggregator.remove_notification_action(
                    user_id,
                    post.user_id,
                    NotificationAction.POST_COMMENT,
                    ActionMetadata(action_database_documents=[comment_id], post_id=post_id),
                )

        # 指向這則留言與其回覆的通知（讚、回覆）一併刪除
        await self._notifications.delete_for_comments([comment_id, *reply_ids])

    # === Likes ===
    async def like(self, user: User, comment_id: str) -> None:
        user_id = user.id
        logger.info("User %s attempting to like the comment %s", user_id, comment_id)
        comment = await self.get_comment(comment_id)

        outcome = await self._comments.apply(comment_id, AppendToSet("likes", user_id))
        if not outcome.appended:
            return

        await self._aggregator.notify_about_action_on_content(
            user_id,
            comment.user_id,
            "comment",
            NotificationAction.COMMENT_LIKE,
            ActionMetadata(
                action_database_documents=[user_id],
                post_id=comment.post_id,
                comment_id=comment.id,
                content_brief=truncate_value(comment.content),
            ),
        )

    async def unlike(self, user: User, comment_id: str) -> None:
        user_id = user.id
        logger.info("User %s attempting to unlike the comment %s", user_id, comment_id)
        comment = await self.get_comment(comment_id)

        outcome = await self._comments.apply(comment_id, RemoveFromSet("likes", user_id))
        if not outcome.removed:
            return

        await self._aggregator.remove_notification_action(
            user_id,
            comment.user_id,
            NotificationAction.COMMENT_LIKE,
            ActionMetadata(action_database_documents=[user_id], post_id=comment.post_id, comment_id=comment.id),
        )

    # === Replies ===
    async def reply(self, user: User, comment_id: str, content: str) -> Comment:
        validate_length(content, "Reply content", COMMENT_MIN_LENGTH, COMMENT_MAX_LENGTH)
        user_id = user.id
        logger.info("Attempting to reply to the comment: %s", comment_id)

        parent = await self.get_comment(comment_id)
        if parent.reply_to:
            raise Forbidden("You can't reply to a reply")

        reply = await self._comments.create(user_id, parent.post_id, content, reply_to=parent.id)
        await self._comments.apply(parent.id, AppendToSet("replies", reply.id))

        await self._aggregator.notify_about_action_on_content(
            user_id,
            parent.user_id,
            "comment",
            NotificationAction.COMMENT_REPLY,
            ActionMetadata(
                action_database_documents=[reply.id],
                post_id=parent.post_id,
                comment_id=parent.id,
                content_brief=truncate_value(parent.content),
            ),
        )
        return reply
