from sqlalchemy import String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class CustomRole(Base, IdMixin, TimestampMixin):
    """
    Admin-defined role with an explicit permission list.
    Users point at it through users.custom_role_id.
    """

    __tablename__ = "custom_roles"

    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # JSON list of permission ids
    permissions: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    def __repr__(self):
        return f"<CustomRole id={self.id} name='{self.name}'>"


class RolePermission(Base, IdMixin, TimestampMixin):
    """
    Stored override of a built-in role's default permission set.
    Deleting the row resets the role to its defaults.
    """

    __tablename__ = "role_permissions"

    role: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    permissions: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    __table_args__ = (
        Index("idx_role_permissions_role", "role"),
    )

    def __repr__(self):
        return f"<RolePermission role={self.role}>"
