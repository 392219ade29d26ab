from typing import Any, Dict, Optional
from datetime import datetime, date
import enum
import uuid

from sqlalchemy import (
    String,
    Integer,
    Text,
    Enum,
    Index,
    UniqueConstraint,
    DateTime,
    Date,
    JSON,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from notifier.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# Enums
class EventKind(enum.Enum):
    BIRTHDAY = "birthday"
    ANNIVERSARY = "anniversary"


class OccurrenceStatus(enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields (naive UTC)"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, onupdate=naive_utc_now, nullable=False
    )


# Models
class User(Base, AuditMixin):
    """User profile. Owned by the user module; read-only to the scheduler."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    birthday: Mapped[date] = mapped_column(Date, nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), nullable=False)
    anniversary_date: Mapped[Optional[date]] = mapped_column(Date)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    # Constraints
    __table_args__ = (
        Index("idx_users_timezone_birthday", "timezone", "birthday"),
        Index("idx_users_timezone_anniversary", "timezone", "anniversary_date"),
    )


class NotificationOccurrence(Base, AuditMixin):
    """One scheduled notification for one user, event kind and year."""

    __tablename__ = "notification_occurrences"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    event_kind: Mapped[EventKind] = mapped_column(Enum(EventKind), nullable=False)
    occurrence_year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OccurrenceStatus] = mapped_column(
        Enum(OccurrenceStatus), default=OccurrenceStatus.PENDING, nullable=False
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    event_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    # Constraints
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "event_kind",
            "occurrence_year",
            name="uq_notification_occurrence",
        ),
        Index("idx_occurrences_status_scheduled", "status", "scheduled_at"),
        Index("idx_occurrences_status_created", "status", "created_at"),
    )
