from sqlalchemy import select
from hlrcheck.app.models import CustomRole, RolePermission, User
from hlrcheck.app.services.permissions import parse_permission_list
from .base import BaseRepository


class CustomRoleRepository(BaseRepository[CustomRole]):
    def __init__(self, db):
        super().__init__(db, CustomRole)

    def get_by_name(self, name: str):
        return self.db.execute(
            select(CustomRole).where(CustomRole.name == name)
        ).scalar_one_or_none()

    def list_all(self):
        return list(self.db.execute(select(CustomRole).order_by(CustomRole.name)).scalars().all())

    def users_count(self, role_id: int) -> int:
        return len(self.db.execute(
            select(User.id).where(User.custom_role_id == role_id)
        ).scalars().all())


class RolePermissionRepository(BaseRepository[RolePermission]):
    def __init__(self, db):
        super().__init__(db, RolePermission)

    def get_by_role(self, role: str):
        return self.db.execute(
            select(RolePermission).where(RolePermission.role == role)
        ).scalar_one_or_none()

    def overrides(self) -> dict:
        """{role: [permission, ...]} for every stored override."""
        out = {}
        for row in self.db.execute(select(RolePermission)).scalars().all():
            perms = parse_permission_list(row.permissions)
            if perms is not None:
                out[row.role] = perms
        return out

