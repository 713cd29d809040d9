# app/services/rate_limit.py
from __future__ import annotations

import time
from typing import Optional, Tuple

from redis.asyncio import Redis

from app.core.config import settings

# 單例 Redis（lazy-init）
_redis: Optional[Redis] = None


def _enabled() -> bool:
    # 每次呼叫時讀設定，測試可以 monkeypatch
    return bool(settings.RATE_LIMIT_ENABLED)


def _get_redis() -> Redis:
    """Lazy 初始化 Redis 連線（redis.asyncio）"""
    global _redis
    if _redis is None:
        _redis = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def _key_ip(ip: str) -> str:
    return f"rl:login:ip:{ip or 'unknown'}"


def _key_identifier_ip(identifier: str, ip: str) -> str:
    # identifier 可能是 email 或 username，不分大小寫
    return f"rl:login:id:{(identifier or '').lower()}|{ip or 'unknown'}"


async def _prune(redis: Redis, key: str, now_s: float) -> None:
    """移除滑動視窗外的紀錄"""
    await redis.zremrangebyscore(key, "-inf", now_s - settings.RATE_LIMIT_WINDOW_SEC)


async def _retry_after(redis: Redis, key: str, now_s: float) -> int:
    data = await redis.zrange(key, 0, 0, withscores=True)
    oldest = float(data[0][1]) if data else now_s
    return max(1, int(settings.RATE_LIMIT_WINDOW_SEC - (now_s - oldest)))


async def _hit(redis: Redis, key: str, now_s: float) -> None:
    await redis.zadd(key, {f"{now_s:.6f}": now_s})
    await redis.expire(key, settings.RATE_LIMIT_WINDOW_SEC)


async def check_limit_and_hit(ip: str, identifier: Optional[str]) -> Tuple[bool, int]:
    """
    檢查是否超出限流；若允許，會順便記一次嘗試。
    回傳 (allowed, retry_after_seconds)：先看 IP，再看 identifier+IP。
    """
    if not _enabled():
        return True, 0

    r = _get_redis()
    now_s = time.time()

    kip = _key_ip(ip)
    await _prune(r, kip, now_s)
    if await r.zcard(kip) >= settings.RATE_LIMIT_MAX_PER_IP:
        return False, await _retry_after(r, kip, now_s)

    if identifier:
        kid = _key_identifier_ip(identifier, ip)
        await _prune(r, kid, now_s)
        if await r.zcard(kid) >= settings.RATE_LIMIT_MAX_PER_IDENTIFIER_IP:
            return False, await _retry_after(r, kid, now_s)

    await _hit(r, kip, now_s)
    if identifier:
        await _hit(r, _key_identifier_ip(identifier, ip), now_s)
    return True, 0


async def reset_success(ip: str, identifier: Optional[str]) -> None:
    """
    登入成功後清空 identifier+IP 的桶；IP 維度保留，維持反掃號保護。
    """
    if not identifier or not _enabled():
        return
    await _get_redis().delete(_key_identifier_ip(identifier, ip))
