# hlrcheck/app/services/auth_service.py

import logging
import secrets
from datetime import timedelta
from typing import Optional, List, Tuple

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from hlrcheck.app.config import settings, MIN_PASSWORD_LENGTH
from hlrcheck.app.db import get_db
from hlrcheck.app.models import User, UserSession, InviteCode
from hlrcheck.app.models.base import utcnow
from hlrcheck.app.repositories.user_repository import UserRepository
from hlrcheck.app.repositories.session_repository import SessionRepository
from hlrcheck.app.repositories.invite_code_repository import InviteCodeRepository
from hlrcheck.app.repositories.role_repository import RolePermissionRepository
from hlrcheck.app.services.audit import log_action, client_ip
from hlrcheck.app.services.permissions import get_user_permissions
from hlrcheck.app.utils.security import (
    hash_password,
    verify_password,
    create_access_token,
    decode_token,
    hash_token,
    parse_user_agent,
)

logger = logging.getLogger(__name__)

COOKIE_NAME = "access_token"

# session.last_activity is only rewritten when older than this
_ACTIVITY_RESOLUTION = timedelta(seconds=60)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ---------------------------------------------------
# EXTRACT TOKEN (COOKIE OR HEADER)
# ---------------------------------------------------
def extract_token(request: Request, token_from_auth: Optional[str]) -> str:
    """
    Priority:
    1. Cookie: access_token
    2. Authorization Bearer token
    """
    cookie_token = request.cookies.get(COOKIE_NAME)
    if cookie_token:
        return cookie_token

    if token_from_auth:
        return token_from_auth

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
    )


def resolve_session(db: Session, token: str) -> Tuple[User, UserSession]:
    """
    token -> (active user, live session). Raises 401/403.
    Shared by HTTP dependencies and the WebSocket route.
    """
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or expired token")

    session = SessionRepository(db).get_by_token_hash(hash_token(token))
    now = utcnow()
    if session is None or session.revoked or session.expires_at <= now:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Session expired")

    user = db.get(User, int(payload["sub"]))
    if user is None or user.id != session.user_id:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "User not found")

    if not user.is_active:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Account is inactive")

    if session.last_activity is None or now - session.last_activity > _ACTIVITY_RESOLUTION:
        session.last_activity = now
        db.add(session)
        db.commit()

    return user, session


# ---------------------------------------------------
# CURRENT USER DEPENDENCY
# ---------------------------------------------------
def get_current_user(
    request: Request,
    token_from_auth: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Auth Flow:
        Cookie/Bearer -> decode token -> session row -> user
    """
    token = extract_token(request, token_from_auth)
    user, session = resolve_session(db, token)
    request.state.user = user
    request.state.session = session
    return user


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin access required")
    return current_user


# ---------------------------------------------------
# PERMISSIONS
# ---------------------------------------------------
def load_user_permissions(db: Session, user: User) -> List[str]:
    overrides = RolePermissionRepository(db).overrides()
    return get_user_permissions(user, overrides=overrides)


def require_permission(*permissions: str):
    """Dependency factory: every listed permission is required."""

    def dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        granted = load_user_permissions(db, current_user)
        for perm in permissions:
            if perm not in granted:
                raise HTTPException(status.HTTP_403_FORBIDDEN, f"Missing permission: {perm}")
        return current_user

    return dependency


# ---------------------------------------------------
# USERS
# ---------------------------------------------------
def validate_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )


def create_user(
    db: Session,
    username: str,
    password: str,
    role: str = "user",
    name: Optional[str] = None,
    email: Optional[str] = None,
    **extra,
) -> User:
    username = (username or "").strip()
    if not username:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username is required")
    validate_password(password)

    repo = UserRepository(db)
    if repo.get_by_username(username):
        raise HTTPException(status.HTTP_409_CONFLICT, "Username already exists")

    return repo.create({
        "username": username,
        "hashed_password": hash_password(password),
        "role": role,
        "name": name,
        "email": email,
        "is_active": True,
        **extra,
    })


def needs_setup(db: Session) -> bool:
    return not UserRepository(db).has_any_admin()


def setup_admin(db: Session, username: str, password: str, name: Optional[str] = None) -> User:
    if not needs_setup(db):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Setup already completed")
    user = create_user(db, username, password, role="admin", name=name)
    log_action(db, user.id, "setup_admin", f"Initial admin {user.username} created")
    return user


def register_with_invite(db: Session, code: str, username: str, password: str, name: Optional[str] = None) -> User:
    invites = InviteCodeRepository(db)
    invite: Optional[InviteCode] = invites.get_by_code((code or "").strip().upper())
    now = utcnow()
    if (
        invite is None
        or not invite.is_active
        or invite.used_by is not None
        or (invite.expires_at is not None and invite.expires_at < now)
    ):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid or expired invite code")

    user = create_user(db, username, password, role="user", name=name, email=invite.email)
    invites.update(invite, {"used_by": user.id, "used_at": now, "is_active": False})
    log_action(db, user.id, "register", f"Registered with invite {invite.code}")
    return user


# ---------------------------------------------------
# SESSIONS
# ---------------------------------------------------
def create_user_session(db: Session, user: User, request: Optional[Request] = None) -> Tuple[str, UserSession]:
    token = create_access_token({
        "sub": str(user.id),
        "username": user.username,
        "jti": secrets.token_urlsafe(16),
    })
    ua = parse_user_agent(request.headers.get("user-agent") if request is not None else None)
    now = utcnow()
    session = UserSession(
        user_id=user.id,
        token_hash=hash_token(token),
        device_info=ua["device_info"],
        browser=ua["browser"],
        os=ua["os"],
        ip_address=client_ip(request),
        last_activity=now,
        expires_at=now + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return token, session


def login(db: Session, username: str, password: str, request: Optional[Request] = None) -> Tuple[User, str]:
    """
    Password login with lockout after MAX_LOGIN_ATTEMPTS failures.
    Returns (user, token) or raises 401/403.
    """
    user = UserRepository(db).get_by_username((username or "").strip())
    if user is None:
        log_action(db, None, "login_failed", f"Unknown username: {username}", request)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid username or password")

    now = utcnow()
    if user.locked_until and user.locked_until > now:
        raise HTTPException(
            status.HTTP_403_FORBIDDEN,
            {"message": "Account locked", "locked_until": user.locked_until.isoformat(), "attempts_left": 0},
        )

    if not verify_password(password, user.hashed_password):
        attempts = (user.failed_login_attempts or 0) + 1
        if attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.failed_login_attempts = 0
            user.locked_until = now + timedelta(minutes=settings.LOCKOUT_MINUTES)
            db.add(user)
            db.commit()
            log_action(db, user.id, "login_failed", "Account locked after failed attempts", request)
            raise HTTPException(
                status.HTTP_403_FORBIDDEN,
                {"message": "Account locked", "locked_until": user.locked_until.isoformat(), "attempts_left": 0},
            )
        user.failed_login_attempts = attempts
        db.add(user)
        db.commit()
        log_action(db, user.id, "login_failed", f"Wrong password ({attempts})", request)
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            {"message": "Invalid username or password", "attempts_left": settings.MAX_LOGIN_ATTEMPTS - attempts},
        )

    if not user.is_active:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Account is inactive")

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_signed_in = now
    db.add(user)
    db.commit()

    token, _ = create_user_session(db, user, request)
    log_action(db, user.id, "login", "Logged in", request)
    return user, token


def logout(db: Session, user: User, session: Optional[UserSession], request: Optional[Request] = None) -> None:
    if session is not None:
        session.revoked = True
        db.add(session)
        db.commit()
    log_action(db, user.id, "logout", "Logged out", request)


def change_password(db: Session, user: User, old_password: str, new_password: str) -> None:
    if not verify_password(old_password, user.hashed_password):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Current password is incorrect")
    validate_password(new_password)
    user.hashed_password = hash_password(new_password)
    db.add(user)
    db.commit()
    log_action(db, user.id, "change_password", "Password changed")
