# app/models/files.py
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, new_object_id, utcnow


class File(Base):
    """已上傳檔案：key 是儲存空間內的路徑，url 是上傳後的原始位置（不含簽名）"""

    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    key: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
