# app/models/base.py
import itertools
import os
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import DeclarativeBase

_counter = itertools.count(int.from_bytes(os.urandom(3), "big"))
_MACHINE = os.urandom(5).hex()


class Base(DeclarativeBase):
    pass


def new_object_id() -> str:
    """
    24 位 hex 的 id（與 ObjectId 同形）：
      4 bytes 秒級時間戳 + 5 bytes 行程隨機值 + 3 bytes 遞增計數
    同一行程內單調遞增，可直接當分頁游標（id < last）。
    """
    ts = int(time.time()) & 0xFFFFFFFF
    count = next(_counter) & 0xFFFFFF
    return f"{ts:08x}{_MACHINE}{count:06x}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite 取回的是 naive datetime，一律視為 UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
