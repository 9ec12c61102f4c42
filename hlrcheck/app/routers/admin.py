# hlrcheck/app/routers/admin.py

import json
import logging
from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Query, status
from sqlalchemy.orm import Session

from hlrcheck.app.config import INVITE_CODE_LENGTH
from hlrcheck.app.db import get_db
from hlrcheck.app.models import User
from hlrcheck.app.models.base import utcnow
from hlrcheck.app.repositories.access_request_repository import AccessRequestRepository
from hlrcheck.app.repositories.audit_log_repository import AuditLogRepository
from hlrcheck.app.repositories.batch_repository import batch_repository_for
from hlrcheck.app.repositories.invite_code_repository import InviteCodeRepository
from hlrcheck.app.repositories.role_repository import CustomRoleRepository, RolePermissionRepository
from hlrcheck.app.repositories.session_repository import SessionRepository
from hlrcheck.app.repositories.setting_repository import SettingRepository
from hlrcheck.app.repositories.user_repository import UserRepository
from hlrcheck.app.routers.batches import batch_out, result_out, not_found
from hlrcheck.app.schemas.access_request import (
    AccessRequestApprove,
    AccessRequestReject,
    AccessRequestResponse,
)
from hlrcheck.app.schemas.admin import (
    ResetPasswordRequest,
    InviteCreate,
    InviteResponse,
    CustomRoleCreate,
    CustomRoleUpdate,
    RolePermissionsUpdate,
    TelegramSettingsUpdate,
    TelegramTestRequest,
    BalanceThresholdUpdate,
    AuditLogResponse,
)
from hlrcheck.app.schemas.user import UserCreate, UserUpdate, UserWithPermissions
from hlrcheck.app.services import role_service
from hlrcheck.app.services.access_request_service import approve_request, reject_request
from hlrcheck.app.services.audit import log_action
from hlrcheck.app.services.auth_service import create_user, require_permission, validate_password
from hlrcheck.app.services.batch_processor import (
    BatchNotFound,
    get_incomplete_batches,
    pause_batch,
    unpause_batch,
)
from hlrcheck.app.services.permissions import (
    BUILTIN_ROLES,
    get_user_permissions,
    permission_descriptions,
    validate_permissions,
)
from hlrcheck.app.services.statistics_service import get_statistics, get_user_stats
from hlrcheck.app.services.telegram_service import (
    BOT_TOKEN_KEY,
    CHAT_ID_KEY,
    BALANCE_THRESHOLD_KEY,
    BALANCE_LAST_SENT_KEY,
    test_telegram_connection,
)
from hlrcheck.app.tasks.batch_tasks import enqueue_batch
from hlrcheck.app.utils.security import hash_password, generate_password, generate_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

manage_users = require_permission("admin.users")
manage_permissions = require_permission("admin.permissions")
manage_settings = require_permission("admin.settings")
view_audit = require_permission("admin.audit")

BatchKind = Literal["hlr", "email"]


def _user_out(db: Session, user: User, overrides=None) -> dict:
    if overrides is None:
        overrides = RolePermissionRepository(db).overrides()
    out = UserWithPermissions.model_validate(user).model_dump()
    out["permissions"] = get_user_permissions(user, overrides=overrides)
    return out


def _get_user(db: Session, user_id: int) -> User:
    user = UserRepository(db).get(user_id)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    return user


def _check_role_assignment(db: Session, actor: User, role: Optional[str], custom_role_id: Optional[int]) -> None:
    if role is not None and role not in BUILTIN_ROLES:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unknown role: {role}")
    if role == "admin" and actor.role != "admin":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Only admins can grant the admin role")
    if custom_role_id is not None and CustomRoleRepository(db).get(custom_role_id) is None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Custom role not found")


# -------------------------------------------------------
# USERS
# -------------------------------------------------------
@router.get("/users")
def list_users(
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    overrides = RolePermissionRepository(db).overrides()
    return [_user_out(db, u, overrides) for u in UserRepository(db).list_all()]


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user_route(
    payload: UserCreate,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    _check_role_assignment(db, current_user, payload.role, payload.custom_role_id)
    user = create_user(
        db,
        payload.username,
        payload.password,
        role=payload.role,
        name=payload.name,
        email=payload.email,
        custom_role_id=payload.custom_role_id,
        daily_limit=payload.daily_limit,
        weekly_limit=payload.weekly_limit,
        monthly_limit=payload.monthly_limit,
        batch_limit=payload.batch_limit,
    )
    log_action(db, current_user.id, "create_user", f"Created user {user.username} ({user.role})", request)
    return _user_out(db, user)


@router.patch("/users/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id)
    data = payload.model_dump(exclude_unset=True)

    if user.id == current_user.id:
        if "role" in data and data["role"] != user.role:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, "You cannot change your own role")
        if data.get("is_active") is False:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, "You cannot deactivate yourself")
    if user.role == "admin" and current_user.role != "admin":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Only admins can edit admins")

    _check_role_assignment(db, current_user, data.get("role"), data.get("custom_role_id"))

    if "custom_permissions" in data:
        perms = data["custom_permissions"]
        if perms is None:
            data["custom_permissions"] = None
        else:
            unknown = validate_permissions(perms)
            if unknown:
                raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unknown permissions: {', '.join(unknown)}")
            data["custom_permissions"] = json.dumps(perms)

    user = UserRepository(db).update(user, data)
    log_action(db, current_user.id, "update_user", f"Updated user {user.username}", request,
               meta={"fields": sorted(data.keys())})
    return _user_out(db, user)


@router.post("/users/{user_id}/reset-password")
def reset_password(
    user_id: int,
    payload: ResetPasswordRequest,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id)
    new_password = payload.new_password or generate_password()
    validate_password(new_password)
    UserRepository(db).update(user, {
        "hashed_password": hash_password(new_password),
        "failed_login_attempts": 0,
        "locked_until": None,
    })
    SessionRepository(db).revoke_all(user.id)
    log_action(db, current_user.id, "reset_password", f"Password reset for {user.username}", request)
    return {"success": True, "password": new_password}


@router.post("/users/{user_id}/unlock")
def unlock_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id)
    UserRepository(db).update(user, {"failed_login_attempts": 0, "locked_until": None})
    log_action(db, current_user.id, "unlock_user", f"Unlocked {user.username}", request)
    return {"success": True}


@router.delete("/users/{user_id}")
def delete_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    if user_id == current_user.id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "You cannot delete yourself")
    user = _get_user(db, user_id)
    if user.role == "admin" and current_user.role != "admin":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Only admins can delete admins")
    username = user.username
    UserRepository(db).delete(user)
    log_action(db, current_user.id, "delete_user", f"Deleted user {username}", request)
    return {"success": True}


@router.get("/users/{user_id}/stats")
def user_stats(
    user_id: int,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    return get_user_stats(db, _get_user(db, user_id))


# -------------------------------------------------------
# INVITES
# -------------------------------------------------------
@router.get("/invites")
def list_invites(current_user: User = Depends(manage_users), db: Session = Depends(get_db)):
    return [InviteResponse.model_validate(i).model_dump() for i in InviteCodeRepository(db).list(limit=500)]


@router.post("/invites", status_code=status.HTTP_201_CREATED)
def create_invite(
    payload: InviteCreate,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    expires_at = utcnow() + timedelta(days=payload.expires_in_days) if payload.expires_in_days else None
    invite = InviteCodeRepository(db).create({
        "code": generate_code(INVITE_CODE_LENGTH),
        "email": payload.email,
        "created_by": current_user.id,
        "expires_at": expires_at,
        "is_active": True,
    })
    log_action(db, current_user.id, "create_invite", f"Invite {invite.code} created", request)
    return InviteResponse.model_validate(invite).model_dump()


@router.delete("/invites/{invite_id}")
def delete_invite(
    invite_id: int,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    repo = InviteCodeRepository(db)
    invite = repo.get(invite_id)
    if invite is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Invite not found")
    repo.delete(invite)
    return {"success": True}


# -------------------------------------------------------
# ROLES & PERMISSIONS
# -------------------------------------------------------
@router.get("/permissions")
def list_permissions(current_user: User = Depends(manage_users)):
    return permission_descriptions()


@router.get("/roles")
def list_roles(current_user: User = Depends(manage_users), db: Session = Depends(get_db)):
    return {
        "builtin": role_service.get_all_role_permissions(db),
        "custom": [role_service.custom_role_out(db, r) for r in CustomRoleRepository(db).list_all()],
    }


@router.put("/roles/{role}/permissions")
def set_role_permissions(
    role: str,
    payload: RolePermissionsUpdate,
    request: Request,
    current_user: User = Depends(manage_permissions),
    db: Session = Depends(get_db),
):
    perms = role_service.set_role_permissions(db, role, payload.permissions)
    log_action(db, current_user.id, "update_role_permissions", f"Role {role}: {len(perms)} permissions", request)
    return {"role": role, "permissions": perms}


@router.delete("/roles/{role}/permissions")
def reset_role_permissions(
    role: str,
    request: Request,
    current_user: User = Depends(manage_permissions),
    db: Session = Depends(get_db),
):
    role_service.reset_role_permissions(db, role)
    log_action(db, current_user.id, "reset_role_permissions", f"Role {role} reset to defaults", request)
    return {"success": True}


@router.post("/custom-roles", status_code=status.HTTP_201_CREATED)
def create_custom_role(
    payload: CustomRoleCreate,
    request: Request,
    current_user: User = Depends(manage_permissions),
    db: Session = Depends(get_db),
):
    role = role_service.create_custom_role(db, payload.name, payload.description, payload.permissions)
    log_action(db, current_user.id, "create_role", f"Custom role {role.name} created", request)
    return role_service.custom_role_out(db, role)


@router.patch("/custom-roles/{role_id}")
def update_custom_role(
    role_id: int,
    payload: CustomRoleUpdate,
    request: Request,
    current_user: User = Depends(manage_permissions),
    db: Session = Depends(get_db),
):
    role = role_service.update_custom_role(db, role_id, payload.model_dump(exclude_unset=True))
    log_action(db, current_user.id, "update_role", f"Custom role {role.name} updated", request)
    return role_service.custom_role_out(db, role)


@router.delete("/custom-roles/{role_id}")
def delete_custom_role(
    role_id: int,
    request: Request,
    current_user: User = Depends(manage_permissions),
    db: Session = Depends(get_db),
):
    role_service.delete_custom_role(db, role_id)
    log_action(db, current_user.id, "delete_role", f"Custom role #{role_id} deleted", request)
    return {"success": True}


# -------------------------------------------------------
# AUDIT LOG
# -------------------------------------------------------
@router.get("/audit-logs")
def audit_logs(
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(view_audit),
    db: Session = Depends(get_db),
):
    rows, total = AuditLogRepository(db).search(user_id=user_id, action=action, skip=skip, limit=limit)
    return {"items": [AuditLogResponse.model_validate(r).model_dump() for r in rows], "total": total}


@router.get("/login-history")
def login_history(
    user_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(view_audit),
    db: Session = Depends(get_db),
):
    rows = AuditLogRepository(db).login_history(user_id, limit=limit)
    return [AuditLogResponse.model_validate(r).model_dump() for r in rows]


# -------------------------------------------------------
# ACCESS REQUESTS
# -------------------------------------------------------
@router.get("/access-requests")
def list_access_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    rows = AccessRequestRepository(db).list_by_status(status_filter)
    return [AccessRequestResponse.model_validate(r).model_dump() for r in rows]


@router.get("/access-requests/pending-count")
def pending_access_requests(current_user: User = Depends(manage_users), db: Session = Depends(get_db)):
    return {"count": AccessRequestRepository(db).pending_count()}


@router.post("/access-requests/{request_id}/approve")
def approve_access_request(
    request_id: int,
    payload: AccessRequestApprove,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    _check_role_assignment(db, current_user, payload.role, None)
    req, user, password = approve_request(
        db, current_user, request_id,
        username=payload.username,
        password=payload.password,
        role=payload.role,
        comment=payload.comment,
        request=request,
    )
    return {
        "request": AccessRequestResponse.model_validate(req).model_dump(),
        "username": user.username,
        "password": password,
    }


@router.post("/access-requests/{request_id}/reject")
def reject_access_request(
    request_id: int,
    payload: AccessRequestReject,
    request: Request,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    req = reject_request(db, current_user, request_id, payload.comment, request)
    return AccessRequestResponse.model_validate(req).model_dump()


@router.delete("/access-requests/{request_id}")
def delete_access_request(
    request_id: int,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    repo = AccessRequestRepository(db)
    req = repo.get(request_id)
    if req is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Request not found")
    repo.delete(req)
    return {"success": True}


# -------------------------------------------------------
# SETTINGS (Telegram + balance alert)
# -------------------------------------------------------
def _mask(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    if len(token) <= 10:
        return "*" * len(token)
    return f"{token[:6]}...{token[-4:]}"


@router.get("/settings/telegram")
def get_telegram_settings(current_user: User = Depends(manage_settings), db: Session = Depends(get_db)):
    repo = SettingRepository(db)
    token = repo.get_value(BOT_TOKEN_KEY)
    chat_id = repo.get_value(CHAT_ID_KEY)
    return {
        "bot_token": _mask(token),
        "chat_id": chat_id,
        "configured": bool(token and chat_id),
    }


@router.put("/settings/telegram")
def save_telegram_settings(
    payload: TelegramSettingsUpdate,
    request: Request,
    current_user: User = Depends(manage_settings),
    db: Session = Depends(get_db),
):
    repo = SettingRepository(db)
    repo.set_value(BOT_TOKEN_KEY, payload.bot_token.strip())
    repo.set_value(CHAT_ID_KEY, payload.chat_id.strip())
    log_action(db, current_user.id, "update_settings", "Telegram settings saved", request)
    return {"success": True}


@router.delete("/settings/telegram")
def clear_telegram_settings(
    request: Request,
    current_user: User = Depends(manage_settings),
    db: Session = Depends(get_db),
):
    SettingRepository(db).delete_keys(BOT_TOKEN_KEY, CHAT_ID_KEY)
    log_action(db, current_user.id, "update_settings", "Telegram settings cleared", request)
    return {"success": True}


@router.post("/settings/telegram/test")
def test_telegram(
    payload: TelegramTestRequest,
    current_user: User = Depends(manage_settings),
    db: Session = Depends(get_db),
):
    repo = SettingRepository(db)
    token = payload.bot_token or repo.get_value(BOT_TOKEN_KEY)
    chat_id = payload.chat_id or repo.get_value(CHAT_ID_KEY)
    if not token or not chat_id:
        return {"success": False, "message": "Bot token and chat id are required"}
    return test_telegram_connection(token, chat_id)


@router.get("/settings/balance-threshold")
def get_balance_threshold(current_user: User = Depends(manage_settings), db: Session = Depends(get_db)):
    raw = SettingRepository(db).get_value(BALANCE_THRESHOLD_KEY)
    return {"threshold": float(raw) if raw else None}


@router.put("/settings/balance-threshold")
def set_balance_threshold(
    payload: BalanceThresholdUpdate,
    request: Request,
    current_user: User = Depends(manage_settings),
    db: Session = Depends(get_db),
):
    repo = SettingRepository(db)
    repo.set_value(BALANCE_THRESHOLD_KEY, str(payload.threshold))
    repo.delete_keys(BALANCE_LAST_SENT_KEY)
    log_action(db, current_user.id, "update_settings", f"Balance threshold set to {payload.threshold}", request)
    return {"threshold": payload.threshold}


# -------------------------------------------------------
# STATISTICS
# -------------------------------------------------------
@router.get("/statistics")
def statistics(current_user: User = Depends(manage_users), db: Session = Depends(get_db)):
    return get_statistics(db)


# -------------------------------------------------------
# BATCH CONTROL (hlr | email)
# -------------------------------------------------------
@router.get("/batches/{kind}")
def list_all_batches(
    kind: BatchKind,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    repo = batch_repository_for(kind, db)
    rows = repo.list_all_with_owner(skip=skip, limit=limit)
    return {
        "items": [
            {**batch_out(kind, batch), "username": username, "user_name": name}
            for batch, username, name in rows
        ],
        "total": repo.count(),
    }


@router.get("/batches/{kind}/incomplete")
def list_all_incomplete(
    kind: BatchKind,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    return [batch_out(kind, b) for b in get_incomplete_batches(db, kind)]


@router.get("/batches/{kind}/{batch_id}/results")
def admin_batch_results(
    batch_id: int,
    kind: BatchKind,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    repo = batch_repository_for(kind, db)
    batch = repo.get(batch_id)
    if batch is None:
        raise not_found(BatchNotFound("Batch not found"))
    rows = repo.list_results(batch.id, skip=skip, limit=limit)
    return {
        "batch": batch_out(kind, batch),
        "items": [result_out(kind, r) for r in rows],
        "total": repo.count_results(batch.id),
    }


@router.post("/batches/{kind}/{batch_id}/pause")
def admin_pause_batch(
    batch_id: int,
    request: Request,
    kind: BatchKind,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    try:
        batch = pause_batch(db, kind, batch_id)
    except BatchNotFound as e:
        raise not_found(e)
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
    log_action(db, current_user.id, "pause_batch", f"{kind} batch #{batch_id} paused", request)
    return batch_out(kind, batch)


@router.post("/batches/{kind}/{batch_id}/resume")
def admin_resume_batch(
    batch_id: int,
    request: Request,
    kind: BatchKind,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    try:
        batch = unpause_batch(db, kind, batch_id)
    except BatchNotFound as e:
        raise not_found(e)
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
    queued = enqueue_batch(kind, batch_id)
    log_action(db, current_user.id, "resume_batch", f"{kind} batch #{batch_id} unpaused", request)
    db.refresh(batch)
    return {"batch": batch_out(kind, batch), "queued": queued}


@router.delete("/batches/{kind}/{batch_id}")
def admin_delete_batch(
    batch_id: int,
    request: Request,
    kind: BatchKind,
    current_user: User = Depends(manage_users),
    db: Session = Depends(get_db),
):
    repo = batch_repository_for(kind, db)
    batch = repo.get(batch_id)
    if batch is None:
        raise not_found(BatchNotFound("Batch not found"))
    repo.delete_with_results(batch)
    log_action(db, current_user.id, "delete_batch", f"{kind} batch #{batch_id} deleted by admin", request)
    return {"success": True}
