"""Read access to the profile subsystem's notification settings."""

from typing import List, Protocol

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from proximity_notifier.core.logging import logger
from proximity_notifier.models.notification_profile import NotificationProfileRecord, city_search_expression
from proximity_notifier.schemas.profile import UserNotificationProfile
from proximity_notifier.services.geo import BoundingBox
from proximity_notifier.utils.locality import city_search_key


class DirectoryLookupError(Exception):
    """The user directory could not be queried; the matching job must be retried as a unit."""


class UserDirectory(Protocol):
    async def find_by_city(self, normalized_city: str) -> List[UserNotificationProfile]:
        ...

    async def find_within_box(self, box: BoundingBox) -> List[UserNotificationProfile]:
        ...


class SqlUserDirectory:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def find_by_city(self, normalized_city: str) -> List[UserNotificationProfile]:
        # Whitespace-free match hits the functional index; the finder re-checks the exact normalized name.
        stmt = select(NotificationProfileRecord).where(
            city_search_expression(NotificationProfileRecord.location_city_name) == city_search_key(normalized_city)
        )
        return await self._fetch(stmt, lookup="city", city=normalized_city)

    async def find_within_box(self, box: BoundingBox) -> List[UserNotificationProfile]:
        lat = NotificationProfileRecord.latitude
        lon = NotificationProfileRecord.longitude
        if box.wraps_longitude:
            lon_clause = or_(lon >= box.min_lon, lon <= box.max_lon)
        else:
            lon_clause = lon.between(box.min_lon, box.max_lon)
        stmt = select(NotificationProfileRecord).where(
            and_(
                lat.is_not(None),
                lon.is_not(None),
                lat.between(box.min_lat, box.max_lat),
                lon_clause,
            )
        )
        return await self._fetch(stmt, lookup="radius")

    async def _fetch(self, stmt, **log_context) -> List[UserNotificationProfile]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("User directory query failed", error=str(e), **log_context)
            raise DirectoryLookupError(str(e)) from e
        return [UserNotificationProfile.model_validate(record) for record in records]
