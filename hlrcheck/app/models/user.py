from datetime import datetime

from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class User(Base, IdMixin, TimestampMixin):
    """
    Dashboard user.
    Includes:
    - authentication (bcrypt hash, lockout)
    - role and per-user permission overrides
    - check limits and rolling counters
    """

    __tablename__ = "users"

    # -----------------------------
    # Authentication
    # -----------------------------
    username: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )

    hashed_password: Mapped[str] = mapped_column(
        String(255), nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_signed_in: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # -----------------------------
    # Identity
    # -----------------------------
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    # -----------------------------
    # Authorization
    # -----------------------------
    role: Mapped[str] = mapped_column(
        String(64), default="user", index=True, nullable=False
    )  # viewer / user / manager / admin / <custom role name>

    custom_role_id: Mapped[int | None] = mapped_column(
        ForeignKey("custom_roles.id", ondelete="SET NULL"),
        nullable=True,
    )

    # JSON list of permission ids, overrides the role when set
    custom_permissions: Mapped[str | None] = mapped_column(Text, nullable=True)

    custom_role = relationship("CustomRole")

    # -----------------------------
    # Limits (0 / null = unlimited)
    # -----------------------------
    daily_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weekly_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    monthly_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    batch_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    checks_today: Mapped[int] = mapped_column(Integer, default=0)
    checks_this_week: Mapped[int] = mapped_column(Integer, default=0)
    checks_this_month: Mapped[int] = mapped_column(Integer, default=0)

    last_check_date: Mapped[str | None] = mapped_column(String(10), nullable=True)   # YYYY-MM-DD
    last_check_week: Mapped[str | None] = mapped_column(String(10), nullable=True)   # YYYY-Www
    last_check_month: Mapped[str | None] = mapped_column(String(7), nullable=True)   # YYYY-MM

    __table_args__ = (
        Index("idx_user_role_active", "role", "is_active"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<User id={self.id} username='{self.username}' role={self.role}>"
