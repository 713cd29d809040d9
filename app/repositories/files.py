# app/repositories/files.py
import logging
from typing import Optional

from sqlalchemy import select

from app.models.files import File
from app.repositories.base import DocumentRepository

logger = logging.getLogger(__name__)


class FileRepository(DocumentRepository[File]):
    model = File

    async def create(self, key: str, url: str, content_type: str) -> File:
        logger.info("Creating the file with key: %s", key)
        return await self.add(File(key=key, url=url, content_type=content_type))

    async def get_by_key(self, key: str) -> Optional[File]:
        stmt = select(File).where(File.key == key).execution_options(populate_existing=True)
        return (await self.session.execute(stmt)).scalar_one_or_none()
