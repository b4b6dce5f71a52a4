from collections import Counter
from datetime import datetime, timezone
from typing import Optional

import httpx
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from proximity_notifier.config import MatchingConfig, Settings
from proximity_notifier.core.logging import logger
from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.notification import MatchingReport, RecipientOutcome
from proximity_notifier.services.admission import AdmissionController
from proximity_notifier.services.candidates import CandidateFinder
from proximity_notifier.services.composer import NotificationComposer
from proximity_notifier.services.directory import SqlUserDirectory, UserDirectory
from proximity_notifier.services.dispatch import Delivery, DispatchFanOut
from proximity_notifier.services.ledger import NotificationLedger
from proximity_notifier.services.preferences import PreferenceFilter
from proximity_notifier.services.push_gateway import ExpoPushGateway, PushGateway
from proximity_notifier.services.stale_tokens import RedisStaleTokenPublisher, StaleTokenSignal


class MatchingEngine:
    """One matching job per created event.

    Finding, filtering and admission only read state, so a failure before
    dispatch (e.g. DirectoryLookupError) can be retried as a whole. Dispatch
    relies on the ledger for idempotency when an event is run again.
    """

    def __init__(
        self,
        directory: UserDirectory,
        ledger: NotificationLedger,
        gateway: PushGateway,
        config: Optional[MatchingConfig] = None,
        stale_tokens: Optional[StaleTokenSignal] = None,
        composer: Optional[NotificationComposer] = None,
    ):
        self.config = config or MatchingConfig()
        self.ledger = ledger
        self.finder = CandidateFinder(directory)
        self.preferences = PreferenceFilter()
        self.admission = AdmissionController(ledger, daily_limit=self.config.daily_limit)
        self.composer = composer or NotificationComposer()
        self.dispatcher = DispatchFanOut(gateway, ledger, stale_tokens=stale_tokens, config=self.config)

    async def run(self, event: Event, now: Optional[datetime] = None) -> MatchingReport:
        now = now or datetime.now(timezone.utc)
        logger.info("Matching started", event_id=event.id, category=event.category)

        candidates = await self.finder.find_candidates(event, self.config.radius_km)
        eligible = self.preferences.filter(candidates, event)
        report = MatchingReport(
            event_id=event.id,
            candidates=len(candidates),
            filtered_out=len(candidates) - len(eligible),
        )

        rejected = Counter()
        deliveries = []
        for candidate in eligible:
            decision = await self.admission.evaluate(candidate.profile, event, now)
            if not decision.admitted:
                rejected[decision.reason] += 1
                continue
            notification = self.composer.compose(event, candidate.profile, candidate.distance_km)
            deliveries.append(Delivery(candidate.profile, notification, candidate.distance_km))

        report.rejected = dict(rejected)
        report.admitted = len(deliveries)

        outcomes = await self.dispatcher.dispatch(event, deliveries)
        report.outcomes = [
            RecipientOutcome(user_id=o.user_id, outcome=o.outcome.value, attempts=o.attempts, error=o.error)
            for o in outcomes.values()
        ]
        logger.info(
            "Matching finished",
            event_id=event.id,
            candidates=report.candidates,
            filtered_out=report.filtered_out,
            admitted=report.admitted,
            delivered=report.count("delivered"),
            failed=report.count("failed"),
            skipped_duplicate=report.count("skipped-duplicate"),
        )
        return report


def build_matching_engine(
    source: Settings,
    session_factory: async_sessionmaker,
    http_client: httpx.AsyncClient,
    redis_client: redis.Redis,
) -> MatchingEngine:
    ledger = NotificationLedger(session_factory)
    return MatchingEngine(
        directory=SqlUserDirectory(session_factory),
        ledger=ledger,
        gateway=ExpoPushGateway(http_client, url=source.PUSH_GATEWAY_URL, access_token=source.EXPO_ACCESS_TOKEN),
        config=MatchingConfig.from_settings(source),
        stale_tokens=RedisStaleTokenPublisher(redis_client, channel=source.STALE_TOKEN_CHANNEL),
        composer=NotificationComposer(deep_link_scheme=source.DEEP_LINK_SCHEME),
    )
