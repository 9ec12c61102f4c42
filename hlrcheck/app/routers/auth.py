# hlrcheck/app/routers/auth.py

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from hlrcheck.app.config import settings
from hlrcheck.app.db import get_db
from hlrcheck.app.models import User
from hlrcheck.app.models.base import utcnow
from hlrcheck.app.repositories.audit_log_repository import AuditLogRepository
from hlrcheck.app.repositories.session_repository import SessionRepository
from hlrcheck.app.schemas.access_request import AccessRequestCreate
from hlrcheck.app.schemas.auth import (
    LoginRequest,
    SetupAdminRequest,
    RegisterRequest,
    ChangePasswordRequest,
    SessionResponse,
    LoginHistoryEntry,
)
from hlrcheck.app.schemas.user import UserWithPermissions
from hlrcheck.app.services import auth_service
from hlrcheck.app.services.access_request_service import create_access_request
from hlrcheck.app.services.audit import log_action
from hlrcheck.app.services.auth_service import COOKIE_NAME, get_current_user, load_user_permissions
from hlrcheck.app.services.statistics_service import get_user_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
        path="/",
    )


def _user_out(db: Session, user: User) -> dict:
    out = UserWithPermissions.model_validate(user).model_dump()
    out["permissions"] = load_user_permissions(db, user)
    return out


# -----------------------------------------------------
# FIRST RUN
# -----------------------------------------------------
@router.get("/needs-setup")
def needs_setup(db: Session = Depends(get_db)):
    return {"needs_setup": auth_service.needs_setup(db)}


@router.post("/setup-admin", status_code=status.HTTP_201_CREATED)
def setup_admin(payload: SetupAdminRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user = auth_service.setup_admin(db, payload.username, payload.password, payload.name)
    token, _ = auth_service.create_user_session(db, user, request)
    _set_auth_cookie(response, token)
    return {"access_token": token, "token_type": "bearer", "user": _user_out(db, user)}


# -----------------------------------------------------
# LOGIN / LOGOUT
# -----------------------------------------------------
@router.post("/login")
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user, token = auth_service.login(db, payload.username, payload.password, request)
    _set_auth_cookie(response, token)
    return {"access_token": token, "token_type": "bearer", "user": _user_out(db, user)}


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.logout(db, current_user, getattr(request.state, "session", None), request)
    response.delete_cookie(COOKIE_NAME, path="/")
    return {"success": True}


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user = auth_service.register_with_invite(db, payload.invite_code, payload.username, payload.password, payload.name)
    token, _ = auth_service.create_user_session(db, user, request)
    _set_auth_cookie(response, token)
    return {"access_token": token, "token_type": "bearer", "user": _user_out(db, user)}


# -----------------------------------------------------
# CURRENT USER
# -----------------------------------------------------
@router.get("/me")
def me(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _user_out(db, current_user)


@router.get("/me/stats")
def my_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_user_stats(db, current_user)


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.change_password(db, current_user, payload.old_password, payload.new_password)
    return {"success": True}


# -----------------------------------------------------
# SESSIONS
# -----------------------------------------------------
@router.get("/sessions")
def list_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    current = getattr(request.state, "session", None)
    rows = SessionRepository(db).list_active(current_user.id, utcnow())
    out = []
    for s in rows:
        item = SessionResponse.model_validate(s).model_dump()
        item["is_current"] = current is not None and s.id == current.id
        out.append(item)
    return out


@router.delete("/sessions/{session_id}")
def terminate_session(
    session_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    repo = SessionRepository(db)
    session = repo.get(session_id)
    if session is None or session.user_id != current_user.id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Session not found")
    repo.update(session, {"revoked": True})
    log_action(db, current_user.id, "terminate_session", f"Session #{session_id} terminated", request)
    return {"success": True}


@router.post("/sessions/terminate-others")
def terminate_other_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    current = getattr(request.state, "session", None)
    count = SessionRepository(db).revoke_all(current_user.id, except_id=current.id if current else None)
    log_action(db, current_user.id, "terminate_sessions", f"{count} other sessions terminated", request)
    return {"success": True, "terminated": count}


@router.get("/login-history")
def login_history(
    limit: int = 50,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = AuditLogRepository(db).login_history(current_user.id, limit=min(max(limit, 1), 500))
    return [LoginHistoryEntry.model_validate(r).model_dump() for r in rows]


# -----------------------------------------------------
# PUBLIC ACCESS REQUEST
# -----------------------------------------------------
@router.post("/access-request", status_code=status.HTTP_201_CREATED)
def request_access(payload: AccessRequestCreate, request: Request, db: Session = Depends(get_db)):
    req = create_access_request(db, payload.model_dump(), request)
    return {"success": True, "id": req.id}
