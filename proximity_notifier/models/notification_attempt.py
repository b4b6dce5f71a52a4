from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, Index, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone
from enum import Enum
import uuid

from proximity_notifier.models.base import Base


class AttemptOutcome(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED_DUPLICATE = "skipped-duplicate"


# Outcomes that claim the (event_id, user_id) idempotency key.
TERMINAL_OUTCOMES = (AttemptOutcome.DELIVERED.value, AttemptOutcome.FAILED.value)
_TERMINAL_PREDICATE = "outcome IN ('delivered', 'failed')"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationAttempt(Base):
    __tablename__ = "notification_attempts"
    __table_args__ = (
        Index(
            "uq_notification_attempts_event_user",
            "event_id",
            "user_id",
            unique=True,
            postgresql_where=text(_TERMINAL_PREDICATE),
            sqlite_where=text(_TERMINAL_PREDICATE),
        ),
        Index("ix_notification_attempts_user_outcome_sent", "user_id", "outcome", "sent_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    outcome = Column(String(20), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    attempts = Column(Integer, nullable=False, default=0)
    title = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)
    deep_link = Column(String(512), nullable=True)
    error = Column(Text, nullable=True)
    detail = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)

    def __repr__(self):
        return f"<NotificationAttempt(id='{self.id}', event_id='{self.event_id}', user_id='{self.user_id}', outcome='{self.outcome}')>"
