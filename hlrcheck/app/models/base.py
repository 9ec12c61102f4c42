from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, DateTime, func


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DB returns for plain DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class IdMixin:
    """
    Adds an auto-increment primary key ID to a model.
    """
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        index=True
    )


class TimestampMixin:
    """
    Adds created_at and updated_at timestamps.
    - created_at: set on insert
    - updated_at: updated on every ORM update
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False
    )
