from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smsgate.models.base import Base, TimestampMixin


class SmsStatus(str, Enum):
    WAITING = "waiting"
    SENT = "sent"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_STATUSES: set[str] = {SmsStatus.REJECTED.value, SmsStatus.EXPIRED.value}


class IncomingMessage(Base):
    """Read-only view of the message aggregate that owns the SMS text."""

    __tablename__ = "incomming_messages"

    message_id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    short_message: Mapped[str | None] = mapped_column(String(160))
    short_message_translit: Mapped[str | None] = mapped_column(String(160))
    date_create: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    @property
    def sms_text(self) -> str | None:
        return self.short_message_translit or self.short_message


class SmsQueue(TimestampMixin, Base):
    __tablename__ = "sms_queue"
    __table_args__ = (
        Index("ix_sms_queue_status_order", "status", "forced", "created_at"),
    )

    sms_id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    message_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("incomming_messages.message_id"),
        nullable=False,
    )
    communication_id: Mapped[int | None] = mapped_column(Integer)
    phone: Mapped[str] = mapped_column(String(255), nullable=False)
    forced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SmsStatus.WAITING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reason: Mapped[str | None] = mapped_column(String(255))

    message: Mapped[IncomingMessage] = relationship(lazy="joined")
