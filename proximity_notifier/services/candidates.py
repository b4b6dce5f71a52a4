from dataclasses import dataclass
from typing import Dict, List, Optional

from proximity_notifier.core.logging import logger
from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.profile import UserNotificationProfile
from proximity_notifier.services.directory import UserDirectory
from proximity_notifier.services.geo import bounding_box, distance_km

DEFAULT_RADIUS_KM = 20.0


@dataclass(frozen=True)
class Candidate:
    profile: UserNotificationProfile
    # None when either side lacks coordinates.
    distance_km: Optional[float] = None

    @property
    def user_id(self) -> str:
        return self.profile.user_id


def _distance_to(event: Event, profile: UserNotificationProfile) -> Optional[float]:
    return distance_km(event.latitude, event.longitude, profile.latitude, profile.longitude)


class CandidateFinder:
    """Broad-recall geographic match: same locality or within a radius."""

    def __init__(self, directory: UserDirectory):
        self._directory = directory

    async def find_candidates(self, event: Event, radius_km: float = DEFAULT_RADIUS_KM) -> List[Candidate]:
        if not event.is_matchable:
            logger.warning("Event has no city or coordinates, no candidates", event_id=event.id)
            return []

        found: Dict[str, Candidate] = {}

        city = event.normalized_city
        if city is not None:
            for profile in await self._directory.find_by_city(city):
                if profile.normalized_city != city:
                    continue
                found[profile.user_id] = Candidate(profile, _distance_to(event, profile))

        if event.coordinates is not None:
            box = bounding_box(event.latitude, event.longitude, radius_km)
            for profile in await self._directory.find_within_box(box):
                if profile.user_id in found:
                    continue
                distance = _distance_to(event, profile)
                if distance is not None and distance <= radius_km:
                    found[profile.user_id] = Candidate(profile, distance)

        logger.info("Candidates found", event_id=event.id, count=len(found), radius_km=radius_km)
        return list(found.values())
