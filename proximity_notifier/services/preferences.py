from typing import Iterable, List, Optional

from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.profile import UserNotificationProfile
from proximity_notifier.services.candidates import Candidate


def exclusion_reason(profile: UserNotificationProfile, event: Event) -> Optional[str]:
    """Return why ``profile`` should not hear about ``event``, or None to keep it.

    An empty ``preferred_categories`` matches every category.
    """
    if not profile.has_push_destination:
        return "no_push_destination"
    if not profile.notifications_enabled:
        return "notifications_disabled"
    if profile.preferred_categories and event.category not in profile.preferred_categories:
        return "category_not_preferred"
    return None


class PreferenceFilter:
    def filter(self, candidates: Iterable[Candidate], event: Event) -> List[Candidate]:
        return [c for c in candidates if exclusion_reason(c.profile, event) is None]
