# app/services/posts.py
import logging
from datetime import timedelta
from typing import List, Optional

from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.validators import validate_length
from app.models.base import as_utc, utcnow
from app.models.comments import Comment
from app.models.notifications import NotificationAction
from app.models.posts import Post
from app.models.users import User
from app.repositories.commands import AppendToSet, RemoveFromSet, SetFields
from app.repositories.comments import CommentRepository
from app.repositories.notifications import NotificationRepository
from app.repositories.posts import PostRepository
from app.repositories.users import UserRepository
from app.schemas.notification import ActionMetadata
from app.services.notifications import NotificationAggregator
from app.services.text import truncate_value

logger = logging.getLogger(__name__)

POST_MIN_LENGTH, POST_MAX_LENGTH = 15, 3000
COMMENT_MIN_LENGTH, COMMENT_MAX_LENGTH = 5, 1000
POST_EDIT_WINDOW = timedelta(hours=1)


class PostService:
    def __init__(
        self,
        posts: PostRepository,
        comments: CommentRepository,
        users: UserRepository,
        notifications: NotificationRepository,
        aggregator: NotificationAggregator,
    ):
        self._posts = posts
        self._comments = comments
        self._users = users
        self._notifications = notifications
        self._aggregator = aggregator

    async def get_post(self, post_id: str) -> Post:
        post = await self._posts.get(post_id)
        if post is None:
            raise NotFound(f"Post with Id {post_id} not found")
        return post

    async def submit(self, user: User, content: str) -> Post:
        validate_length(content, "Post content", POST_MIN_LENGTH, POST_MAX_LENGTH)
        user_id = user.id
        logger.info("Attempting to submit a post for user %s", user_id)

        post = await self._posts.create(user_id, content)
        await self._users.apply(user_id, AppendToSet("posts", post.id))
        return post

    async def update(self, user: User, post_id: str, content: str) -> Post:
        validate_length(content, "Post content", POST_MIN_LENGTH, POST_MAX_LENGTH)
        logger.info("Attempting to update the post: %s", post_id)

        post = await self.get_post(post_id)
        if post.user_id != user.id:
            raise Forbidden("You can't update someone else's post")
        if utcnow() - as_utc(post.created_at) > POST_EDIT_WINDOW:
            raise ValidationError("You can't update a post after 1 hour of submission")

        await self._posts.apply(post_id, SetFields({"content": content}))
        return await self.get_post(post_id)

    async def delete(self, user: User, post_id: str) -> None:
        logger.info("Attempting to delete the post: %s", post_id)
        user_id = user.id

        post = await self.get_post(post_id)
        if post.user_id != user_id:
            raise Forbidden("You can't delete someone else's post")

        # 留言、回覆、所有指向這篇貼文（含其留言）的通知一起清掉
        await self._comments.delete_for_post(post_id)
        await self._notifications.delete_by_target_metadata(post_id=post_id)
        await self._posts.delete(post_id)
        await self._users.apply(user_id, RemoveFromSet("posts", post_id))

    async def list_user_posts(self, user_id: str, limit: int, last_id: Optional[str] = None) -> List[Post]:
        logger.info("Getting posts of user %s", user_id)
        return await self._posts.list_by_users([user_id], limit, last_id)

    async def timeline(self, user: User, limit: int, last_id: Optional[str] = None) -> List[Post]:
        logger.info("Getting timeline posts for user %s", user.id)
        return await self._posts.list_by_users(user.followings, limit, last_id)

    # === Likes ===
    async def like(self, user: User, post_id: str) -> None:
        user_id = user.id
        logger.info("User %s attempting to like the post %s", user_id, post_id)
        post = await self.get_post(post_id)

        outcome = await self._posts.apply(post_id, AppendToSet("likes", user_id))
        if not outcome.appended:
            return

        await self._aggregator.notify_about_action_on_content(
            user_id,
            post.user_id,
            "post",
            NotificationAction.POST_LIKE,
            ActionMetadata(
                action_database_documents=[user_id],
                post_id=post.id,
                content_brief=truncate_value(post.content),
            ),
        )

    async def unlike(self, user: User, post_id: str) -> None:
        user_id = user.id
        logger.info("User %s attempting to unlike the post %s", user_id, post_id)
        post = await self.get_post(post_id)

        outcome = await self._posts.apply(post_id, RemoveFromSet("likes", user_id))
        if not outcome.removed:
            return

        await self._aggregator.remove_notification_action(
            user_id,
            post.user_id,
            NotificationAction.POST_LIKE,
            ActionMetadata(action_database_documents=[user_id], post_id=post.id),
        )

    # === Comments ===
    async def comment(self, user: User, post_id: str, content: str) -> Comment:
        validate_length(content, "Comment content", COMMENT_MIN_LENGTH, COMMENT_MAX_LENGTH)
        user_id = user.id
        logger.info("User %s attempting to comment on the post %s", user_id, post_id)
        post = await self.get_post(post_id)

        comment = await self._comments.create(user_id, post.id, content)
        await self._posts.apply(post.id, AppendToSet("comments", comment.id))

        await self._aggregator.notify_about_action_on_content(
            user_id,
            post.user_id,
            "post",
            NotificationAction.POST_COMMENT,
            ActionMetadata(
                action_database_documents=[comment.id],
                post_id=post.id,
                content_brief=truncate_value(post.content),
            ),
        )
        return comment
