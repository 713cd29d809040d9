# app/services/users.py
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import InternalError, NotFound, ValidationError
from app.models.users import User
from app.repositories.commands import AppendToSet, RemoveFromSet, SetFields
from app.repositories.notifications import NotificationRepository
from app.repositories.users import UserRepository
from app.services.notifications import NotificationAggregator

logger = logging.getLogger(__name__)


class UserService:
    def __init__(
        self,
        users: UserRepository,
        notifications: NotificationRepository,
        aggregator: NotificationAggregator,
    ):
        self._users = users
        self._notifications = notifications
        self._aggregator = aggregator

    async def get_user(self, user_id: str) -> User:
        user = await self._users.get(user_id)
        if user is None:
            raise NotFound(f"User with Id {user_id} not found")
        return user

    async def get_by_username(self, username: str) -> User:
        logger.info("Getting user with username: %s", username)
        user = await self._users.get_by_username(username)
        if user is None:
            raise NotFound(f"User with username {username} not found")
        return user

    async def search(self, username_query: str, limit: int, last_id: Optional[str] = None) -> List[User]:
        logger.info("Searching for users with username matching: %s", username_query)
        return await self._users.search_by_username(username_query, limit, last_id)

    async def list_followers(self, user_id: str, limit: int, last_id: Optional[str] = None) -> List[User]:
        user = await self.get_user(user_id)
        return await self._users.list_by_ids(user.followers, limit, last_id)

    async def list_followings(self, user_id: str, limit: int, last_id: Optional[str] = None) -> List[User]:
        user = await self.get_user(user_id)
        return await self._users.list_by_ids(user.followings, limit, last_id)

    async def update_profile(self, user: User, changes: Dict[str, Optional[str]]) -> User:
        logger.info("Received an edit profile request from %s", user.id)
        values = {key: value for key, value in changes.items() if value is not None}
        if not values:
            return user
        return await self._users.atomic_update(user.id, SetFields(values))

    # === Follow / Unfollow（兩份文件，非交易；失敗時手動補償） ===
    async def follow(self, follower: User, following_id: str) -> None:
        follower_id = follower.id
        follower_username = follower.username
        logger.info("Attempting to add %s to %s's followings list", following_id, follower_id)

        if follower_id == following_id:
            raise ValidationError("Invalid follow request")
        await self.get_user(following_id)

        outcome = await self._users.apply(follower_id, AppendToSet("followings", following_id))
        if not outcome.matched:
            raise NotFound(f"User with Id {follower_id} not found")

        try:
            await self._users.apply(following_id, AppendToSet("followers", follower_id))
        except SQLAlchemyError as exc:
            logger.error("Error adding %s to %s's followers list", follower_id, following_id)
            if outcome.appended:
                await self._compensate(
                    follower_id, RemoveFromSet("followings", following_id),
                    "Failed to add the user to your followings list",
                )
            raise InternalError("Failed to add the user to your followings list") from exc

        # 已經在追蹤中就不再通知
        if outcome.appended:
            await self._aggregator.notify_about_follow(follower_id, following_id, follower_username)

    async def unfollow(self, follower: User, following_id: str) -> None:
        follower_id = follower.id
        follower_username = follower.username
        logger.info("Attempting to remove %s from %s's followings list", following_id, follower_id)

        if follower_id == following_id:
            raise ValidationError("Invalid unfollow request")

        outcome = await self._users.apply(follower_id, RemoveFromSet("followings", following_id))

        try:
            await self._users.apply(following_id, RemoveFromSet("followers", follower_id))
        except SQLAlchemyError as exc:
            logger.error("Error removing %s from %s's followers list", follower_id, following_id)
            if outcome.removed:
                await self._compensate(
                    follower_id, AppendToSet("followings", following_id),
                    "Failed to remove the user from your followings list",
                )
            raise InternalError("Failed to remove the user from your followings list") from exc

        await self._notifications.delete_by_target_metadata(
            follower_username=follower_username, following_id=following_id
        )

    async def _compensate(self, user_id: str, command, failure: str) -> None:
        logger.info("Reverting %s on %s's %s", type(command).__name__, user_id, command.field)
        try:
            await self._users.apply(user_id, command)
        except SQLAlchemyError as exc:
            # 補償也失敗：不可默默留下單邊關係
            logger.exception("Compensation failed for user %s", user_id)
            raise InternalError(f"{failure}; the relationship may be inconsistent") from exc
