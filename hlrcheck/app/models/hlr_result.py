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


class HlrResult(Base, IdMixin, TimestampMixin):
    """
    One HLR lookup outcome. Provider payload is flattened into columns,
    the raw response is kept for export and debugging.
    """

    __tablename__ = "hlr_results"

    batch_id: Mapped[int] = mapped_column(
        ForeignKey("hlr_batches.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )

    # normalised input, the resume diff is computed on this column
    phone_number: Mapped[str] = mapped_column(String(32), index=True, nullable=False)

    international_format: Mapped[str | None] = mapped_column(String(32))
    national_format: Mapped[str | None] = mapped_column(String(32))
    country_code: Mapped[str | None] = mapped_column(String(8))
    country_name: Mapped[str | None] = mapped_column(String(128))
    country_prefix: Mapped[str | None] = mapped_column(String(8))

    current_carrier_name: Mapped[str | None] = mapped_column(String(128))
    current_carrier_code: Mapped[str | None] = mapped_column(String(16))
    current_carrier_country: Mapped[str | None] = mapped_column(String(8))
    current_network_type: Mapped[str | None] = mapped_column(String(32))

    original_carrier_name: Mapped[str | None] = mapped_column(String(128))
    original_carrier_code: Mapped[str | None] = mapped_column(String(16))

    valid_number: Mapped[str | None] = mapped_column(String(32))   # valid / not_valid / unknown
    reachable: Mapped[str | None] = mapped_column(String(32))      # reachable / unreachable / unknown
    ported: Mapped[str | None] = mapped_column(String(32))         # ported / not_ported / unknown
    roaming: Mapped[str | None] = mapped_column(String(32))        # roaming / not_roaming / unknown

    gsm_code: Mapped[str | None] = mapped_column(String(16))
    gsm_message: Mapped[str | None] = mapped_column(String(255))

    health_score: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(16), default="success")  # success / error
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_cache: Mapped[bool] = mapped_column(Boolean, default=False)

    raw_response: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("uq_hlrresult_batch_phone", "batch_id", "phone_number", unique=True),
    )

    @property
    def is_valid(self) -> bool:
        return self.status == "success" and self.valid_number == "valid"

    def __repr__(self):
        return f"<HlrResult id={self.id} phone={self.phone_number} status={self.status}>"
