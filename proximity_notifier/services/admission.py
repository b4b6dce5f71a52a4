from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from proximity_notifier.core.logging import logger
from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.profile import UserNotificationProfile
from proximity_notifier.services.ledger import NotificationLedger

QUOTA_WINDOW = timedelta(hours=24)
DEFAULT_DAILY_LIMIT = 3

ADMITTED = "admitted"
QUOTA_EXCEEDED = "quota_exceeded"
OUTSIDE_WINDOW = "outside_window"
UNSUPPORTED_WINDOW = "unsupported_window"


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    reason: str


def resolve_timezone(name: str, user_id: str = None) -> tzinfo:
    """ZoneInfo for ``name``, falling back to UTC with a warning."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        logger.warning("Unknown timezone, evaluating window in UTC", timezone=name, user_id=user_id)
        return timezone.utc


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class AdmissionController:
    """Rolling daily quota plus local delivery window, both required."""

    def __init__(self, ledger: NotificationLedger, daily_limit: int = DEFAULT_DAILY_LIMIT):
        self._ledger = ledger
        self._daily_limit = daily_limit

    async def admit(self, user: UserNotificationProfile, event: Event, now_utc: datetime) -> bool:
        decision = await self.evaluate(user, event, now_utc)
        return decision.admitted

    async def evaluate(self, user: UserNotificationProfile, event: Event, now_utc: datetime) -> AdmissionDecision:
        now_utc = _as_utc(now_utc)

        # Window first: it needs no ledger round-trip.
        window_reason = self._check_window(user, now_utc)
        if window_reason is not None:
            decision = AdmissionDecision(False, window_reason)
        else:
            delivered = await self._ledger.count_delivered_since(user.user_id, now_utc - QUOTA_WINDOW)
            if delivered >= self._daily_limit:
                decision = AdmissionDecision(False, QUOTA_EXCEEDED)
            else:
                decision = AdmissionDecision(True, ADMITTED)

        if not decision.admitted:
            logger.info("Candidate not admitted", event_id=event.id, user_id=user.user_id, reason=decision.reason)
        return decision

    def _check_window(self, user: UserNotificationProfile, now_utc: datetime):
        start, end = user.window_start_hour, user.window_end_hour
        if start >= end:
            # TODO: support windows that wrap midnight (e.g. 22 -> 6) once product confirms the semantics.
            logger.warning(
                "Notification window wraps midnight or is empty, not supported",
                user_id=user.user_id,
                window_start_hour=start,
                window_end_hour=end,
            )
            return UNSUPPORTED_WINDOW

        local_hour = now_utc.astimezone(resolve_timezone(user.timezone, user.user_id)).hour
        if not (start <= local_hour < end):
            return OUTSIDE_WINDOW
        return None
