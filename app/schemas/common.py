# app/schemas/common.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """JSON 用 camelCase，Python 端用 snake_case"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Pagination(CamelModel):
    limit: int = Field(5, ge=1, le=50)
    last_document_id: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
