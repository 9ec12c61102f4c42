from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    ForeignKey,
    JSON,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class EmailResult(Base, IdMixin, TimestampMixin):
    """One email verification outcome."""

    __tablename__ = "email_results"

    batch_id: Mapped[int] = mapped_column(
        ForeignKey("email_batches.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )

    email: Mapped[str] = mapped_column(String(320), index=True, nullable=False)

    quality: Mapped[str | None] = mapped_column(String(32))
    result: Mapped[str | None] = mapped_column(String(32))      # ok / catch_all / unknown / error / disposable / invalid
    subresult: Mapped[str | None] = mapped_column(String(64))
    result_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False)
    is_role: Mapped[bool] = mapped_column(Boolean, default=False)
    did_you_mean: Mapped[str | None] = mapped_column(String(320))

    # valid / invalid / risky / unknown
    verdict: Mapped[str] = mapped_column(String(16), default="unknown", index=True)

    status: Mapped[str] = mapped_column(String(16), default="success")  # success / error
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_cache: Mapped[bool] = mapped_column(Boolean, default=False)

    raw_response: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("uq_emailresult_batch_email", "batch_id", "email", unique=True),
    )

    @property
    def is_valid(self) -> bool:
        return self.verdict == "valid"

    def __repr__(self):
        return f"<EmailResult id={self.id} email={self.email} verdict={self.verdict}>"
