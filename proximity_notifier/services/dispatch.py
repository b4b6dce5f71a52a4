import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from proximity_notifier.config import MatchingConfig
from proximity_notifier.core.logging import logger
from proximity_notifier.models.notification_attempt import AttemptOutcome, NotificationAttempt
from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.notification import ComposedNotification
from proximity_notifier.schemas.profile import UserNotificationProfile
from proximity_notifier.services.ledger import NotificationLedger
from proximity_notifier.services.push_gateway import (
    InvalidPushDestinationError,
    PushGateway,
    PushGatewayError,
    TransientPushError,
)
from proximity_notifier.services.stale_tokens import StaleTokenSignal
from proximity_notifier.utils.retry import async_retry


@dataclass(frozen=True)
class Delivery:
    profile: UserNotificationProfile
    notification: ComposedNotification
    distance_km: Optional[float] = None

    @property
    def user_id(self) -> str:
        return self.profile.user_id


@dataclass(frozen=True)
class DispatchOutcome:
    user_id: str
    outcome: AttemptOutcome
    attempts: int = 0
    error: Optional[str] = None


class DispatchFanOut:
    """Concurrent, failure-isolated delivery of composed notifications.

    Each recipient is handled independently: a duplicate check against the
    ledger, a bounded gateway call with retry, and a ledger write. Nothing a
    single recipient does can abort the others.
    """

    def __init__(
        self,
        gateway: PushGateway,
        ledger: NotificationLedger,
        stale_tokens: Optional[StaleTokenSignal] = None,
        config: Optional[MatchingConfig] = None,
    ):
        self._gateway = gateway
        self._ledger = ledger
        self._stale_tokens = stale_tokens
        self._config = config or MatchingConfig()

    async def dispatch(self, event: Event, deliveries: Iterable[Delivery]) -> Dict[str, DispatchOutcome]:
        by_user = {d.user_id: d for d in deliveries}
        if not by_user:
            return {}

        semaphore = asyncio.Semaphore(max(1, self._config.dispatch_concurrency))

        async def run(delivery: Delivery) -> DispatchOutcome:
            async with semaphore:
                return await self._deliver_one(event, delivery)

        results = await asyncio.gather(*(run(d) for d in by_user.values()), return_exceptions=True)

        outcomes: Dict[str, DispatchOutcome] = {}
        errors = []
        for user_id, result in zip(by_user, results):
            if isinstance(result, BaseException):
                logger.error("Could not record outcome for recipient", event_id=event.id, user_id=user_id, error=repr(result))
                errors.append(result)
            else:
                outcomes[user_id] = result

        if errors:
            # Only ledger failures reach here; gateway errors are folded into outcomes.
            raise errors[0]
        return outcomes

    async def _deliver_one(self, event: Event, delivery: Delivery) -> DispatchOutcome:
        user_id = delivery.user_id

        if await self._ledger.has_attempt(event.id, user_id):
            logger.info("Duplicate notification suppressed", event_id=event.id, user_id=user_id)
            await self._ledger.record(self._attempt(event, delivery, AttemptOutcome.SKIPPED_DUPLICATE, attempts=0))
            return DispatchOutcome(user_id, AttemptOutcome.SKIPPED_DUPLICATE)

        attempts = 0
        notification = delivery.notification

        async def send_once():
            nonlocal attempts
            attempts += 1
            return await asyncio.wait_for(
                self._gateway.send(
                    delivery.profile.push_destination,
                    notification.title,
                    notification.body,
                    notification.deep_link,
                    notification.data,
                ),
                timeout=self._config.per_send_timeout,
            )

        send = async_retry(
            tries=self._config.retry_count + 1,
            delay=self._config.retry_backoff_seconds,
            backoff=2,
            exceptions=(TransientPushError, asyncio.TimeoutError),
        )(send_once)

        detail = {}
        error = None
        try:
            receipt = await send()
            outcome = AttemptOutcome.DELIVERED
            detail["ticket_id"] = receipt.ticket_id
        except InvalidPushDestinationError as e:
            outcome, error = AttemptOutcome.FAILED, e.reason
            detail["stale_destination"] = True
            await self._signal_stale(event, delivery, e.reason)
        except asyncio.TimeoutError:
            outcome, error = AttemptOutcome.FAILED, "Timeout"
        except PushGatewayError as e:
            outcome, error = AttemptOutcome.FAILED, e.reason
        except Exception as e:
            logger.error("Unexpected error sending push", event_id=event.id, user_id=user_id, error=repr(e))
            outcome, error = AttemptOutcome.FAILED, type(e).__name__

        attempt = self._attempt(event, delivery, outcome, attempts=attempts, error=error, detail=detail)
        if not await self._ledger.record(attempt):
            return DispatchOutcome(user_id, AttemptOutcome.SKIPPED_DUPLICATE, attempts=attempts, error=error)

        if outcome == AttemptOutcome.DELIVERED:
            logger.info("Notification delivered", event_id=event.id, user_id=user_id, attempts=attempts)
        else:
            logger.error("Notification failed", event_id=event.id, user_id=user_id, attempts=attempts, error=error)
        return DispatchOutcome(user_id, outcome, attempts=attempts, error=error)

    async def _signal_stale(self, event: Event, delivery: Delivery, reason: str) -> None:
        logger.warning("Push destination invalid", event_id=event.id, user_id=delivery.user_id, reason=reason)
        if self._stale_tokens is None:
            return
        try:
            await self._stale_tokens.publish(delivery.user_id, delivery.profile.push_destination, event.id, reason)
        except Exception as e:
            logger.error("Failed to publish stale token signal", user_id=delivery.user_id, error=str(e))

    def _attempt(self, event, delivery, outcome, attempts, error=None, detail=None) -> NotificationAttempt:
        detail = dict(detail or {})
        if delivery.distance_km is not None:
            detail["distance_km"] = round(delivery.distance_km, 3)
        return NotificationAttempt(
            event_id=event.id,
            user_id=delivery.user_id,
            outcome=outcome.value,
            sent_at=datetime.now(timezone.utc),
            attempts=attempts,
            title=delivery.notification.title,
            body=delivery.notification.body,
            deep_link=delivery.notification.deep_link,
            error=error,
            detail=detail,
        )
