from sqlalchemy import Column, String, Boolean, Float, Integer, JSON, Index, func
from sqlalchemy.dialects.postgresql import JSONB

from proximity_notifier.models.base import Base
from proximity_notifier.utils.locality import SEARCH_WHITESPACE


class NotificationProfileRecord(Base):
    """Read-only mirror of the profile subsystem's notification settings."""

    __tablename__ = "notification_profiles"

    user_id = Column(String(64), primary_key=True)
    push_destination = Column(String(255), nullable=True)
    location_city_name = Column(String(120), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    preferred_categories = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    window_start_hour = Column(Integer, nullable=False, default=8)
    window_end_hour = Column(Integer, nullable=False, default=22)
    timezone = Column(String(64), nullable=False, default="UTC")

    def __repr__(self):
        return f"<NotificationProfileRecord(user_id='{self.user_id}', city='{self.location_city_name}')>"


def city_search_expression(column):
    """SQL counterpart of ``city_search_key``: lower-cased with all whitespace removed."""
    expr = func.lower(column)
    for char in SEARCH_WHITESPACE:
        expr = func.replace(expr, char, "")
    return expr


Index(
    "ix_notification_profiles_city",
    city_search_expression(NotificationProfileRecord.location_city_name),
)
Index(
    "ix_notification_profiles_coordinates",
    NotificationProfileRecord.latitude,
    NotificationProfileRecord.longitude,
)
