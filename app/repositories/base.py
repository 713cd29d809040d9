# app/repositories/base.py
import logging
from typing import Any, Dict, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InternalError
from app.repositories.commands import (
    AppendToSet, Command, RemoveFromSet, SetFields, UpdateOutcome,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class DocumentRepository(Generic[ModelT]):
    """
    把一筆 row + 集合附表當成一份「文件」操作。
    集合欄位的新增 / 移除走 INSERT .. ON CONFLICT DO NOTHING / DELETE，
    不會整列覆寫，並發請求不會互相蓋掉。
    """

    model: Type[ModelT]
    member_model: Optional[Type[Any]] = None
    set_fields: Sequence[str] = ()

    def __init__(self, session: AsyncSession):
        self.session = session

    # ---- 讀取 ----
    async def get(self, doc_id: str) -> Optional[ModelT]:
        # populate_existing：同一個 session 內更新過的文件要重新讀回
        stmt = (
            select(self.model)
            .where(self.model.id == doc_id)
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def add(self, doc: ModelT) -> ModelT:
        self.session.add(doc)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return await self.get(doc.id)

    # ---- 原子更新 ----
    async def apply(self, doc_id: str, *commands: Command) -> UpdateOutcome:
        """在單一交易內依序執行指令；任何一步失敗就整批 rollback"""
        outcome = UpdateOutcome()
        try:
            found = await self.session.scalar(select(self.model.id).where(self.model.id == doc_id))
            if found is None:
                await self.session.commit()
                return outcome
            outcome.matched = True
            for command in commands:
                await self._execute(doc_id, command, outcome)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return outcome

    async def _execute(self, doc_id: str, command: Command, outcome: UpdateOutcome) -> None:
        if isinstance(command, AppendToSet):
            table, row = self._member_row(doc_id, command.field, command.value)
            stmt = self._insert(table).values(**row).on_conflict_do_nothing()
            result = await self.session.execute(stmt)
            outcome.appended += max(result.rowcount or 0, 0)
        elif isinstance(command, RemoveFromSet):
            table, row = self._member_row(doc_id, command.field, command.value)
            criteria = [getattr(table, key) == value for key, value in self._member_key(row).items()]
            result = await self.session.execute(delete(table).where(*criteria))
            outcome.removed += max(result.rowcount or 0, 0)
        elif isinstance(command, SetFields):
            if command.values:
                await self.session.execute(
                    update(self.model).where(self.model.id == doc_id).values(**command.values)
                )
        else:
            raise TypeError(f"Unsupported command: {command!r}")

    def _insert(self, table):
        dialect = self.session.bind.dialect.name
        try:
            return _INSERTS[dialect](table)
        except KeyError as exc:
            raise InternalError(f"Unsupported database dialect: {dialect}") from exc

    def _member_row(self, doc_id: str, field: str, value: Any):
        if field not in self.set_fields or self.member_model is None:
            raise ValueError(f"{self.model.__name__} has no set field '{field}'")
        return self.member_model, {"owner_id": doc_id, "field": field, "value": value}

    def _member_key(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return row

    async def delete(self, doc_id: str) -> int:
        """刪除文件與其集合附表（不依賴 DB 端的 ON DELETE CASCADE）"""
        try:
            if self.member_model is not None:
                await self.session.execute(
                    delete(self.member_model).where(self.member_model.owner_id == doc_id)
                )
            result = await self.session.execute(delete(self.model).where(self.model.id == doc_id))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount or 0
