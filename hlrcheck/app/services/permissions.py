# hlrcheck/app/services/permissions.py
"""
Role / permission matrix.

Built-in roles inherit from the roles below them. A stored RolePermission row
replaces a built-in role's defaults, a CustomRole carries its own list, and a
user's custom_permissions JSON overrides whatever the role gives.
"""

import json
import logging
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

# -----------------------------------------
# PERMISSION CATALOGUE
# -----------------------------------------
PERMISSION_INFO: Dict[str, Dict[str, str]] = {
    "hlr.single": {"name": "Single Check", "description": "Perform single HLR checks", "category": "HLR"},
    "hlr.batch": {"name": "Batch Check", "description": "Perform batch HLR checks", "category": "HLR"},
    "hlr.export": {"name": "Export Results", "description": "Export HLR results to CSV/Excel", "category": "HLR"},
    "hlr.history": {"name": "View History", "description": "View HLR check history", "category": "HLR"},
    "hlr.delete": {"name": "Delete Batches", "description": "Delete HLR batches and results", "category": "HLR"},
    "email.single": {"name": "Single Email Check", "description": "Verify a single email address", "category": "Email"},
    "email.batch": {"name": "Batch Email Check", "description": "Verify email lists", "category": "Email"},
    "email.export": {"name": "Export Email Results", "description": "Export email results to CSV/Excel", "category": "Email"},
    "email.history": {"name": "View Email History", "description": "View email check history", "category": "Email"},
    "email.delete": {"name": "Delete Email Batches", "description": "Delete email batches and results", "category": "Email"},
    "tools.duplicates": {"name": "Duplicate Tool", "description": "Use duplicate removal tool", "category": "Tools"},
    "admin.users": {"name": "Manage Users", "description": "Create, edit, delete users", "category": "Admin"},
    "admin.audit": {"name": "View Audit", "description": "View audit logs", "category": "Admin"},
    "admin.settings": {"name": "Settings", "description": "Change system settings", "category": "Admin"},
    "admin.permissions": {"name": "Permissions", "description": "Edit roles and permissions", "category": "Admin"},
}

PERMISSIONS: List[str] = list(PERMISSION_INFO.keys())

# -----------------------------------------
# BUILT-IN ROLES
# -----------------------------------------
BUILTIN_ROLES = ("viewer", "user", "manager", "admin")

ROLE_HIERARCHY: Dict[str, List[str]] = {
    "viewer": [],
    "user": ["viewer"],
    "manager": ["user", "viewer"],
    "admin": ["manager", "user", "viewer"],
}

ROLE_OWN_PERMISSIONS: Dict[str, List[str]] = {
    "viewer": ["hlr.history", "email.history"],
    "user": [
        "hlr.single", "hlr.batch", "hlr.export",
        "email.single", "email.batch", "email.export",
        "tools.duplicates",
    ],
    "manager": ["hlr.delete", "email.delete", "admin.users", "admin.audit"],
    "admin": list(PERMISSIONS),
}

ROLE_INFO: Dict[str, Dict[str, str]] = {
    "viewer": {"name": "Viewer", "description": "Can only view check history"},
    "user": {"name": "User", "description": "Standard user with full check access"},
    "manager": {"name": "Manager", "description": "Can manage users in addition to user permissions"},
    "admin": {"name": "Admin", "description": "Full access to all features"},
}


def _ordered(perms: Iterable[str]) -> List[str]:
    wanted = set(perms)
    return [p for p in PERMISSIONS if p in wanted]


def get_default_role_permissions(role: str) -> List[str]:
    """Own + inherited permissions of a built-in role. Unknown roles get nothing."""
    if role not in ROLE_HIERARCHY:
        return []
    perms = set(ROLE_OWN_PERMISSIONS.get(role, []))
    for inherited in ROLE_HIERARCHY[role]:
        perms.update(ROLE_OWN_PERMISSIONS.get(inherited, []))
    return _ordered(perms)


DEFAULT_PERMISSIONS: Dict[str, List[str]] = {
    role: get_default_role_permissions(role) for role in BUILTIN_ROLES
}


def parse_permission_list(raw) -> Optional[List[str]]:
    """
    Accepts a JSON string or a list. Unknown ids are dropped.
    Returns None when raw is empty or not a JSON list.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("invalid permission JSON ignored")
            return None
    if not isinstance(raw, list):
        return None
    return _ordered(p for p in raw if p in PERMISSION_INFO)


def validate_permissions(perms: Iterable[str]) -> List[str]:
    """Returns the unknown ids (empty list when all are known)."""
    return [p for p in perms if p not in PERMISSION_INFO]


# -----------------------------------------
# RESOLUTION
# -----------------------------------------
def get_role_permissions(
    role: str,
    overrides: Optional[Dict[str, List[str]]] = None,
    custom_roles: Optional[Dict[str, List[str]]] = None,
) -> List[str]:
    if role == "admin":
        return list(PERMISSIONS)
    if overrides and role in overrides:
        return _ordered(overrides[role])
    if role in ROLE_HIERARCHY:
        return get_default_role_permissions(role)
    if custom_roles and role in custom_roles:
        return _ordered(custom_roles[role])
    return []


def get_user_permissions(
    user,
    overrides: Optional[Dict[str, List[str]]] = None,
    custom_roles: Optional[Dict[str, List[str]]] = None,
) -> List[str]:
    if getattr(user, "role", None) == "admin":
        return list(PERMISSIONS)

    custom = parse_permission_list(getattr(user, "custom_permissions", None))
    if custom is not None:
        return custom

    custom_role = getattr(user, "custom_role", None)
    if custom_role is not None:
        return parse_permission_list(custom_role.permissions) or []

    return get_role_permissions(user.role, overrides, custom_roles)


def has_permission(user, permission: str, **kwargs) -> bool:
    return permission in get_user_permissions(user, **kwargs)


def has_any_permission(user, permissions: Iterable[str], **kwargs) -> bool:
    granted = set(get_user_permissions(user, **kwargs))
    return any(p in granted for p in permissions)


def has_all_permissions(user, permissions: Iterable[str], **kwargs) -> bool:
    granted = set(get_user_permissions(user, **kwargs))
    return all(p in granted for p in permissions)


# -----------------------------------------
# DESCRIPTIONS (admin UI)
# -----------------------------------------
def permission_descriptions() -> List[Dict[str, str]]:
    return [{"id": pid, **info} for pid, info in PERMISSION_INFO.items()]


def role_descriptions(overrides: Optional[Dict[str, List[str]]] = None) -> List[Dict]:
    return [
        {
            "id": role,
            **ROLE_INFO[role],
            "permissions": get_role_permissions(role, overrides),
            "is_customized": bool(overrides and role in overrides),
        }
        for role in BUILTIN_ROLES
    ]
