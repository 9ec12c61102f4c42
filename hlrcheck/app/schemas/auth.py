from datetime import datetime

from pydantic import BaseModel

from .base import ORMBase


class LoginRequest(BaseModel):
    username: str
    password: str


class SetupAdminRequest(BaseModel):
    username: str
    password: str
    name: str | None = None


class RegisterRequest(BaseModel):
    invite_code: str
    username: str
    password: str
    name: str | None = None


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class SessionResponse(ORMBase):
    device_info: str | None = None
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    location: str | None = None
    last_activity: datetime | None = None
    expires_at: datetime
    is_current: bool = False


class LoginHistoryEntry(ORMBase):
    action: str
    details: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
