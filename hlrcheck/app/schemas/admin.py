from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from .base import ORMBase


class ResetPasswordRequest(BaseModel):
    new_password: str | None = None


class InviteCreate(BaseModel):
    email: str | None = None
    expires_in_days: int | None = Field(None, ge=1, le=365)


class InviteResponse(ORMBase):
    code: str
    email: str | None = None
    created_by: int
    used_by: int | None = None
    used_at: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool


class CustomRoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    description: str | None = None
    permissions: List[str] = []


class CustomRoleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=64)
    description: str | None = None
    permissions: List[str] | None = None


class RolePermissionsUpdate(BaseModel):
    permissions: List[str]


class TelegramSettingsUpdate(BaseModel):
    bot_token: str = Field(..., min_length=1)
    chat_id: str = Field(..., min_length=1)


class TelegramTestRequest(BaseModel):
    bot_token: str | None = None
    chat_id: str | None = None


class BalanceThresholdUpdate(BaseModel):
    threshold: float = Field(..., ge=0)


class AuditLogResponse(ORMBase):
    user_id: int | None = None
    action: str
    details: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    meta: dict | None = None
