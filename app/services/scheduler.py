# app/services/scheduler.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI

from app.core.config import settings
from app.db.session import AsyncSessionLocal
from app.services.denylist_cleanup import cleanup_expired_denylist
from app.services.rate_limit import close_redis

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None


@asynccontextmanager
async def lifespan_scheduler(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan：啟動 / 關閉 APScheduler，
    關機時等背景工作跑完並關掉 Redis。
    """
    global scheduler
    interval = settings.DENYLIST_CLEANUP_INTERVAL_MINUTES
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(run_cleanup_job, IntervalTrigger(minutes=interval))
    scheduler.start()
    logger.info("APScheduler started: denylist cleanup every %s minutes", interval)
    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler shutdown")
        background = getattr(app.state, "background", None)
        if background is not None:
            await background.drain()
        await close_redis()


async def run_cleanup_job() -> int:
    """排程作業：開一次性 session 清掉所有過期的 denylist 項目"""
    try:
        async with AsyncSessionLocal() as db:
            deleted = await cleanup_expired_denylist(db)
    except Exception:
        logger.exception("Denylist cleanup failed")
        return 0
    logger.info("Denylist cleanup done, deleted %s entries", deleted)
    return deleted
