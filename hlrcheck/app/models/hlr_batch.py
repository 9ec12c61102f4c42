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


class HlrBatch(Base, IdMixin, TimestampMixin):
    """
    A persisted group of HLR lookups submitted together.
    Supports:
    - status tracking (pending, processing, paused, completed, failed)
    - aggregate counters updated per processed item
    - stored normalised input list for resume
    """

    __tablename__ = "hlr_batches"

    # --------------------------------------
    # Ownership
    # --------------------------------------
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )

    user = relationship("User")

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default="pending",
        index=True
    )

    # --------------------------------------
    # Input
    # --------------------------------------
    input_items: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # --------------------------------------
    # Stats
    # --------------------------------------
    total: Mapped[int] = mapped_column(Integer, default=0)
    processed: Mapped[int] = mapped_column(Integer, default=0)
    valid: Mapped[int] = mapped_column(Integer, default=0)
    invalid: Mapped[int] = mapped_column(Integer, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_hlrbatch_status_user", "status", "user_id"),
    )

    def __repr__(self):
        return f"<HlrBatch id={self.id} status={self.status} {self.processed}/{self.total}>"
