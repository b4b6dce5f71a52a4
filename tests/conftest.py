import pytest
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from proximity_notifier.config import MatchingConfig
from proximity_notifier.core.logging import configure_logging
from proximity_notifier.models.base import Base
from proximity_notifier.models import notification_attempt, notification_profile  # noqa: F401 - register tables
from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.profile import UserNotificationProfile
from proximity_notifier.services.directory import DirectoryLookupError
from proximity_notifier.services.ledger import NotificationLedger
from proximity_notifier.services.push_gateway import PushReceipt

configure_logging()

# Saturday noon UTC, inside the default 8-22 window for London users.
NOW = datetime(2025, 12, 13, 12, 0, tzinfo=timezone.utc)

LONDON_EVENT_COORDS = (51.5034, -0.1276)
MANCHESTER_COORDS = (53.4808, -2.2426)


def make_event(**overrides) -> Event:
    data = {
        "id": "evt-1",
        "title": "Sunday Praise Night",
        "category": "Gospel Concert",
        "city_name": "London",
        "latitude": LONDON_EVENT_COORDS[0],
        "longitude": LONDON_EVENT_COORDS[1],
        "occurs_at": datetime(2025, 12, 20, 19, 30, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return Event(**data)


def make_profile(user_id: str, **overrides) -> UserNotificationProfile:
    data = {
        "user_id": user_id,
        "push_destination": f"ExponentPushToken[{user_id}]",
        "location_city_name": "London",
        "notifications_enabled": True,
        "preferred_categories": set(),
        "window_start_hour": 8,
        "window_end_hour": 22,
        "timezone": "Europe/London",
    }
    data.update(overrides)
    return UserNotificationProfile(**data)


class FakeDirectory:
    """In-memory user directory honouring the same query contract as SqlUserDirectory."""

    def __init__(self, profiles=(), fail: bool = False):
        self.profiles = list(profiles)
        self.fail = fail
        self.city_queries = []
        self.box_queries = []

    async def find_by_city(self, normalized_city):
        self.city_queries.append(normalized_city)
        if self.fail:
            raise DirectoryLookupError("directory offline")
        return [p for p in self.profiles if p.normalized_city == normalized_city]

    async def find_within_box(self, box):
        self.box_queries.append(box)
        if self.fail:
            raise DirectoryLookupError("directory offline")
        found = []
        for p in self.profiles:
            if p.coordinates is None or not (box.min_lat <= p.latitude <= box.max_lat):
                continue
            if box.wraps_longitude:
                in_lon = p.longitude >= box.min_lon or p.longitude <= box.max_lon
            else:
                in_lon = box.min_lon <= p.longitude <= box.max_lon
            if in_lon:
                found.append(p)
        return found


class FakeGateway:
    """Records sends; ``behaviours`` maps a destination to an exception or a list of them."""

    def __init__(self, behaviours=None):
        self.behaviours = dict(behaviours or {})
        self.calls = []
        self.sent = []

    async def send(self, destination, title, body, deep_link, data=None):
        self.calls.append(destination)
        behaviour = self.behaviours.get(destination)
        if isinstance(behaviour, list):
            behaviour = behaviour.pop(0) if behaviour else None
        if behaviour is not None:
            if callable(behaviour) and not isinstance(behaviour, BaseException):
                return await behaviour()
            raise behaviour
        self.sent.append({"to": destination, "title": title, "body": body, "deep_link": deep_link, "data": data})
        return PushReceipt(ticket_id=f"ticket-{len(self.sent)}")


class RecordingStaleTokens:
    def __init__(self, fail: bool = False):
        self.published = []
        self.fail = fail

    async def publish(self, user_id, push_destination, event_id, reason):
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append({"user_id": user_id, "push_destination": push_destination, "event_id": event_id, "reason": reason})


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

@pytest.fixture
def ledger(session_factory):
    return NotificationLedger(session_factory)

@pytest.fixture
def matching_config():
    return MatchingConfig(per_send_timeout=0.5, retry_count=1, retry_backoff_seconds=0, dispatch_concurrency=5)

@pytest.fixture
def gateway():
    return FakeGateway()

@pytest.fixture
def stale_tokens():
    return RecordingStaleTokens()
