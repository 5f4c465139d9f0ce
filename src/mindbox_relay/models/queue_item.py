"""SQLAlchemy model for operation calls awaiting (re)delivery."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mindbox_relay.db.session import Base
from mindbox_relay.db.types import UTCDateTime, utcnow


class QueueStatus(str, enum.Enum):
    """Lifecycle state of a queue item.

    The one-letter values are what is stored, so existing queue tables stay
    readable.
    """

    NEW = "N"
    RETRY = "R"
    LOCKED = "W"
    SUCCESS = "S"
    FAILED = "F"


# Rows in these states are picked up by the periodic pass.
ACTIVE_STATUSES = (QueueStatus.NEW, QueueStatus.RETRY, QueueStatus.LOCKED)


class QueueItem(Base):
    """One operation call with its frozen connection parameters and diagnostics."""

    __tablename__ = "mindbox_queue"
    __table_args__ = (
        Index("ix_mindbox_queue_due", "status", "next_run_at", "locked_until"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    status: Mapped[QueueStatus] = mapped_column(
        Enum(
            QueueStatus,
            native_enum=False,
            length=1,
            values_callable=lambda members: [member.value for member in members],
            validate_strings=True,
        ),
        nullable=False,
        default=QueueStatus.NEW,
    )
    next_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    tries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Exact call parameters
    mode: Mapped[str] = mapped_column(String(8), nullable=False)
    operation: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="")
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    authorization: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    api_url: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    endpoint_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    timeout: Mapped[float] = mapped_column(nullable=False, default=5.0)
    idempotency_token: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Diagnostics from the most recent attempt
    http_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    response_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    last_error_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QueueItem(id={self.id}, operation={self.operation!r}, "
            f"status={self.status.value}, tries={self.tries})>"
        )
