from sqlalchemy import (
    String,
    ForeignKey,
    JSON,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class AuditLog(Base, IdMixin, TimestampMixin):
    """
    Stores audit trails for every important action:
    - login / login_failed / logout (login history is a view over these)
    - single checks and batch starts/resumes
    - exports
    - admin actions on users, roles and batches
    """

    __tablename__ = "audit_logs"

    # Who performed the action?
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )

    # "login", "start_batch", "resume_batch", "export", "delete_user", ...
    action: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    details: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    user = relationship("User")

    __table_args__ = (
        Index("idx_audit_action_user", "action", "user_id"),
    )

    def __repr__(self):
        return f"<AuditLog id={self.id} action={self.action} user={self.user_id}>"
