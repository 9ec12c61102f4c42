import json
from types import SimpleNamespace

from hlrcheck.app.services.permissions import (
    PERMISSIONS,
    get_default_role_permissions,
    get_role_permissions,
    get_user_permissions,
    has_permission,
    has_all_permissions,
    has_any_permission,
    parse_permission_list,
    validate_permissions,
    role_descriptions,
)


def _user(role="user", custom_permissions=None, custom_role=None):
    return SimpleNamespace(role=role, custom_permissions=custom_permissions, custom_role=custom_role)


def test_roles_inherit_downwards():
    viewer = set(get_default_role_permissions("viewer"))
    user = set(get_default_role_permissions("user"))
    manager = set(get_default_role_permissions("manager"))
    assert viewer < user < manager
    assert "hlr.delete" in manager
    assert "hlr.delete" not in user


def test_admin_has_everything_even_with_override():
    assert get_role_permissions("admin", overrides={"admin": []}) == PERMISSIONS
    assert get_user_permissions(_user("admin", custom_permissions="[]")) == PERMISSIONS


def test_unknown_role_has_nothing():
    assert get_default_role_permissions("ghost") == []
    assert get_role_permissions("ghost") == []


def test_override_replaces_defaults():
    perms = get_role_permissions("user", overrides={"user": ["hlr.single"]})
    assert perms == ["hlr.single"]


def test_custom_permissions_beat_role():
    u = _user("viewer", custom_permissions=json.dumps(["hlr.batch", "nope"]))
    assert get_user_permissions(u) == ["hlr.batch"]
    assert has_permission(u, "hlr.batch")
    assert not has_permission(u, "hlr.history")


def test_custom_role_permissions():
    role = SimpleNamespace(permissions=json.dumps(["email.single", "email.history"]))
    u = _user("support", custom_role=role)
    assert get_user_permissions(u) == ["email.single", "email.history"]
    assert has_any_permission(u, ["hlr.single", "email.single"])
    assert not has_all_permissions(u, ["hlr.single", "email.single"])


def test_parse_permission_list():
    assert parse_permission_list(None) is None
    assert parse_permission_list("") is None
    assert parse_permission_list("{bad json") is None
    assert parse_permission_list('{"a": 1}') is None
    assert parse_permission_list(["admin.audit", "hlr.single"]) == ["hlr.single", "admin.audit"]


def test_validate_permissions_reports_unknown():
    assert validate_permissions(["hlr.single", "x.y"]) == ["x.y"]


def test_role_descriptions_flag_customized():
    roles = {r["id"]: r for r in role_descriptions({"user": ["hlr.single"]})}
    assert roles["user"]["is_customized"] is True
    assert roles["user"]["permissions"] == ["hlr.single"]
    assert roles["viewer"]["is_customized"] is False
