from datetime import datetime

from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class AccessRequest(Base, IdMixin, TimestampMixin):
    """
    Public request for an account, reviewed by an admin.
    status: pending / approved / rejected
    """

    __tablename__ = "access_requests"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), index=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    telegram: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)

    processed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    admin_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # account created on approval
    created_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        Index("idx_access_request_status_email", "status", "email"),
    )

    def __repr__(self):
        return f"<AccessRequest id={self.id} email={self.email} status={self.status}>"
