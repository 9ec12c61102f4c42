from datetime import datetime

from sqlalchemy import (
    Integer,
    String,
    Text,
    ForeignKey,
    DateTime,
    JSON,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class EmailBatch(Base, IdMixin, TimestampMixin):
    """
    A persisted group of email verifications.
    Same lifecycle as HlrBatch, with risky/unknown counters on top.
    """

    __tablename__ = "email_batches"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )

    user = relationship("User")

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    input_items: Mapped[list | None] = mapped_column(JSON, nullable=True)

    total: Mapped[int] = mapped_column(Integer, default=0)
    processed: Mapped[int] = mapped_column(Integer, default=0)
    valid: Mapped[int] = mapped_column(Integer, default=0)
    invalid: Mapped[int] = mapped_column(Integer, default=0)
    risky: Mapped[int] = mapped_column(Integer, default=0)
    unknown: Mapped[int] = mapped_column(Integer, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_emailbatch_status_user", "status", "user_id"),
    )

    def __repr__(self):
        return f"<EmailBatch id={self.id} status={self.status} {self.processed}/{self.total}>"
