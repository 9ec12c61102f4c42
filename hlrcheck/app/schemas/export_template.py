from typing import List

from pydantic import BaseModel, Field

from .base import ORMBase


class ExportTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    kind: str = Field("hlr", pattern="^(hlr|email)$")
    fields: List[str] = Field(..., min_length=1)
    is_default: bool = False


class ExportTemplateUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    fields: List[str] | None = None
    is_default: bool | None = None


class ExportTemplateResponse(ORMBase):
    user_id: int
    kind: str
    name: str
    fields: List[str]
    is_default: bool
