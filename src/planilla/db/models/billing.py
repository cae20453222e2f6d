"""Billing provider webhook ledger."""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableJSON, UTCDateTime


class WebhookEventStatus(str, Enum):
    """Processing state of a received webhook event."""

    PENDING = "Pending"
    PROCESSED = "Processed"
    FAILED = "Failed"


class WebhookEvent(Base):
    """One row per external event id.

    The unique constraint on ``external_event_id`` is what makes webhook
    processing idempotent under replay and concurrent delivery.
    """

    __tablename__ = "webhook_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    tenant_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WebhookEventStatus.PENDING.value
    )
    event_created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    received_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_payload: Mapped[dict | None] = mapped_column(PortableJSON(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<WebhookEvent(external_event_id={self.external_event_id}, "
            f"type={self.type}, status={self.status})>"
        )
