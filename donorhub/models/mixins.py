# donorhub/models/mixins.py
"""Shared SQLAlchemy mixins and time helpers."""

from datetime import datetime, timezone

from sqlalchemy.orm import Mapped, mapped_column

from donorhub.extensions import db


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns are stored as naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class TimestampMixin:
    """Adds created_at and updated_at columns with auto-refresh behavior."""

    created_at: Mapped[datetime] = mapped_column(
        db.DateTime, default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        db.DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
