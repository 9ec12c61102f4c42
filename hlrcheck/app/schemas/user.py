from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from .base import ORMBase


class UserLimits(BaseModel):
    daily_limit: int | None = None
    weekly_limit: int | None = None
    monthly_limit: int | None = None
    batch_limit: int | None = None


class UserCreate(UserLimits):
    username: str = Field(..., min_length=1, max_length=100)
    password: str
    name: str | None = None
    email: str | None = None
    role: str = "user"
    custom_role_id: int | None = None


class UserUpdate(UserLimits):
    name: str | None = None
    email: str | None = None
    role: str | None = None
    custom_role_id: int | None = None
    is_active: bool | None = None
    custom_permissions: List[str] | None = None


class UserResponse(ORMBase, UserLimits):
    username: str
    name: str | None = None
    email: str | None = None
    role: str
    custom_role_id: int | None = None
    is_active: bool
    locked_until: datetime | None = None
    last_signed_in: datetime | None = None
    checks_today: int = 0
    checks_this_week: int = 0
    checks_this_month: int = 0


class UserWithPermissions(UserResponse):
    permissions: List[str] = []
