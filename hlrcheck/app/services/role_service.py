# hlrcheck/app/services/role_service.py
"""
Stored role configuration: built-in role overrides and custom roles.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

from hlrcheck.app.models import CustomRole
from hlrcheck.app.repositories.role_repository import CustomRoleRepository, RolePermissionRepository
from hlrcheck.app.services.permissions import (
    BUILTIN_ROLES,
    parse_permission_list,
    role_descriptions,
    validate_permissions,
)

logger = logging.getLogger(__name__)


def _check_known(perms: List[str]) -> None:
    unknown = validate_permissions(perms)
    if unknown:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unknown permissions: {', '.join(unknown)}")


# ---------------------------------------------------------
# Built-in role overrides
# ---------------------------------------------------------
def get_all_role_permissions(db) -> List[Dict[str, Any]]:
    return role_descriptions(RolePermissionRepository(db).overrides())


def set_role_permissions(db, role: str, perms: List[str]) -> List[str]:
    if role not in BUILTIN_ROLES:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unknown role: {role}")
    if role == "admin":
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Admin permissions cannot be changed")
    _check_known(perms)

    repo = RolePermissionRepository(db)
    stored = json.dumps(list(dict.fromkeys(perms)))
    row = repo.get_by_role(role)
    if row is None:
        repo.create({"role": role, "permissions": stored})
    else:
        repo.update(row, {"permissions": stored})
    logger.info("role %s permissions overridden (%d)", role, len(perms))
    return parse_permission_list(stored) or []


def reset_role_permissions(db, role: str) -> None:
    repo = RolePermissionRepository(db)
    row = repo.get_by_role(role)
    if row is not None:
        repo.delete(row)


# ---------------------------------------------------------
# Custom roles
# ---------------------------------------------------------
def custom_role_out(db, role: CustomRole) -> Dict[str, Any]:
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "permissions": parse_permission_list(role.permissions) or [],
        "users_count": CustomRoleRepository(db).users_count(role.id),
        "created_at": role.created_at,
    }


def _check_name(db, name: str, exclude_id: Optional[int] = None) -> str:
    name = name.strip()
    if name.lower() in BUILTIN_ROLES:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Name clashes with a built-in role")
    existing = CustomRoleRepository(db).get_by_name(name)
    if existing is not None and existing.id != exclude_id:
        raise HTTPException(status.HTTP_409_CONFLICT, "Role name already exists")
    return name


def create_custom_role(db, name: str, description: Optional[str], perms: List[str]) -> CustomRole:
    name = _check_name(db, name)
    _check_known(perms)
    return CustomRoleRepository(db).create({
        "name": name,
        "description": description,
        "permissions": json.dumps(list(dict.fromkeys(perms))),
    })


def update_custom_role(db, role_id: int, data: Dict[str, Any]) -> CustomRole:
    repo = CustomRoleRepository(db)
    role = repo.get(role_id)
    if role is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Role not found")

    changes: Dict[str, Any] = {}
    if data.get("name") is not None:
        changes["name"] = _check_name(db, data["name"], exclude_id=role.id)
    if "description" in data:
        changes["description"] = data["description"]
    if data.get("permissions") is not None:
        _check_known(data["permissions"])
        changes["permissions"] = json.dumps(list(dict.fromkeys(data["permissions"])))
    return repo.update(role, changes)


def delete_custom_role(db, role_id: int) -> None:
    repo = CustomRoleRepository(db)
    role = repo.get(role_id)
    if role is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Role not found")
    in_use = repo.users_count(role.id)
    if in_use:
        raise HTTPException(status.HTTP_409_CONFLICT, f"Role is assigned to {in_use} users")
    repo.delete(role)
