import json
from datetime import timezone
from pathlib import Path
from typing import Optional

from proximity_notifier.core.logging import logger
from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.notification import ComposedNotification
from proximity_notifier.schemas.profile import UserNotificationProfile
from proximity_notifier.services.admission import resolve_timezone

DEFAULT_TEMPLATE = {
    "title_in_city": "New {category} in {city}!",
    "title_near_you": "New {category} near you!",
    "body": "{event_title} · {when}",
    "distance_suffix": " ({distance_km:.1f}km away)",
    "when_format": "%a %d %b %Y, %H:%M",
    "untitled_event": "An event you might like",
    "fallback_title": "New event near you!",
    "fallback_body": "Tap to see the details.",
}

# Load notification templates from JSON file
def load_notification_templates(template_path: Optional[Path] = None) -> dict:
    template_path = template_path or Path(__file__).parent.parent / "templates" / "notifications.json"
    try:
        with open(template_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        logger.error("Failed to load notification templates", error=str(e), path=str(template_path))
        return {}

NOTIFICATION_TEMPLATES = load_notification_templates()


def build_deep_link(scheme: str, event_id: str) -> str:
    return f"{scheme}event/{event_id}"


class NotificationComposer:
    """Builds push title/body/deep link for one recipient. Never raises."""

    def __init__(self, deep_link_scheme: str = "soundbridge://", templates: Optional[dict] = None):
        self._scheme = deep_link_scheme
        templates = NOTIFICATION_TEMPLATES if templates is None else templates
        self._template = {**DEFAULT_TEMPLATE, **templates.get("event_nearby", {})}
        self.template_version = templates.get("version", "unknown")

    def compose(
        self,
        event: Event,
        user: UserNotificationProfile,
        distance_km: Optional[float] = None,
    ) -> ComposedNotification:
        deep_link = build_deep_link(self._scheme, event.id)
        data = {"type": "event", "eventId": event.id, "deepLink": deep_link}
        try:
            title, body = self._render(event, user, distance_km)
        except Exception as e:
            logger.error(
                "Failed to compose notification, using fallback text",
                event_id=event.id,
                user_id=user.user_id,
                error=str(e),
            )
            title, body = self._template["fallback_title"], self._template["fallback_body"]
        return ComposedNotification(title=title, body=body, deep_link=deep_link, data=data)

    def _render(self, event: Event, user: UserNotificationProfile, distance_km: Optional[float]):
        t = self._template
        city = (event.city_name or "").strip()
        if city:
            title = t["title_in_city"].format(category=event.category, city=city)
        else:
            title = t["title_near_you"].format(category=event.category)

        occurs_at = event.occurs_at
        if occurs_at.tzinfo is None:
            occurs_at = occurs_at.replace(tzinfo=timezone.utc)
        when = occurs_at.astimezone(resolve_timezone(user.timezone, user.user_id)).strftime(t["when_format"])

        event_title = (event.title or "").strip() or t["untitled_event"]
        body = t["body"].format(event_title=event_title, when=when)
        if distance_km is not None:
            body += t["distance_suffix"].format(distance_km=distance_km)
        return title, body
