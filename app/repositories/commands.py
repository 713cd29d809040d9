# app/repositories/commands.py
"""
文件更新指令：取代「把任意 dict 當 $addToSet / $pull 丟給 DB」的寫法。
Repository 逐一解讀這些指令，每一個都是欄位層級的原子操作。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Union


@dataclass(frozen=True)
class DenylistItem:
    token: str
    expires_in: int  # token 的 exp（epoch 秒）


@dataclass(frozen=True)
class AppendToSet:
    field: str
    value: Union[str, DenylistItem]


@dataclass(frozen=True)
class RemoveFromSet:
    field: str
    value: Union[str, DenylistItem]


@dataclass(frozen=True)
class SetFields:
    values: Dict[str, Any] = field(default_factory=dict)


Command = Union[AppendToSet, RemoveFromSet, SetFields]


@dataclass
class UpdateOutcome:
    matched: bool = False
    appended: int = 0
    removed: int = 0
