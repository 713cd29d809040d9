# app/services/denylist_cleanup.py
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import AsyncSessionLocal
from app.repositories.users import UserRepository

logger = logging.getLogger(__name__)


async def cleanup_expired_denylist(db: AsyncSession) -> int:
    """刪除所有使用者已過期的 denylist 項目，回傳刪除數量。"""
    return await UserRepository(db).delete_expired_denylist(int(time.time()))


async def prune_user_denylist(user_id: str) -> int:
    """登入時順手清掉該使用者過期的 denylist；使用獨立 session"""
    async with AsyncSessionLocal() as db:
        deleted = await UserRepository(db).prune_denylist(user_id, int(time.time()))
    logger.info("Pruned %s expired denylist entries for user %s", deleted, user_id)
    return deleted
