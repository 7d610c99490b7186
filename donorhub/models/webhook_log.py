from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from donorhub.extensions import db

from .mixins import utcnow


class WebhookLog(db.Model):
    """Append-only audit trail: one row per inbound webhook delivery."""

    __tablename__ = "webhook_logs"
    __table_args__ = (
        Index("ix_webhook_logs_source_created", "source", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    source: Mapped[str] = mapped_column(db.String(20), nullable=False, doc="stripe / donorbox")
    event_type: Mapped[Optional[str]] = mapped_column(
        db.String(120),
        nullable=True,
        index=True,
        doc="Provider event type (payment_intent.succeeded, donation.created, ...)",
    )
    external_event_id: Mapped[Optional[str]] = mapped_column(
        db.String(120),
        nullable=True,
        index=True,
        doc="Provider event id when the envelope carries one (evt_...)",
    )

    payload: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True, doc="Raw request body")
    signature: Mapped[Optional[str]] = mapped_column(db.String(500), nullable=True)

    verified: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    processed: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(db.String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<WebhookLog {self.id} {self.source}:{self.event_type} processed={self.processed}>"
