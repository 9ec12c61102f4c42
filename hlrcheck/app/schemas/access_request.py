import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .base import ORMBase

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class AccessRequestCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    telegram: str | None = None
    reason: str | None = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v.lower()


class AccessRequestApprove(BaseModel):
    username: str | None = None
    password: str | None = None
    role: str = "user"
    comment: str | None = None


class AccessRequestReject(BaseModel):
    comment: str | None = None


class AccessRequestResponse(ORMBase):
    name: str
    email: str | None = None
    phone: str | None = None
    telegram: str | None = None
    reason: str | None = None
    status: str
    processed_by: int | None = None
    processed_at: datetime | None = None
    admin_comment: str | None = None
    created_user_id: int | None = None
