# app/services/background.py
import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger(__name__)


class DetachedTaskRunner:
    """
    Fire-and-forget 的背景工作：呼叫端不等待結果，
    失敗時只寫 log，不影響主流程。
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, *, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        # 保留強參照，避免 task 執行到一半被 GC
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %r", task.get_name(), exc)

    async def drain(self) -> None:
        """等待目前所有背景工作結束（關機 / 測試收尾用）"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
