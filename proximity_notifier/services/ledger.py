from uuid import UUID
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from proximity_notifier.core.logging import logger
from proximity_notifier.models.notification_attempt import (
    AttemptOutcome,
    NotificationAttempt,
    TERMINAL_OUTCOMES,
)


class NotificationLedger:
    """Append-only log of notification attempts keyed by (event_id, user_id).

    Every write runs in its own session so concurrent fan-out tasks never
    share a transaction. A partial unique index allows a single delivered or
    failed row per key; losing that race is reported, not raised.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def has_attempt(self, event_id: str, user_id: str) -> bool:
        stmt = (
            select(NotificationAttempt.id)
            .where(
                NotificationAttempt.event_id == event_id,
                NotificationAttempt.user_id == user_id,
                NotificationAttempt.outcome.in_(TERMINAL_OUTCOMES),
            )
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def count_delivered_since(self, user_id: str, since_utc: datetime) -> int:
        stmt = select(func.count(NotificationAttempt.id)).where(
            NotificationAttempt.user_id == user_id,
            NotificationAttempt.outcome == AttemptOutcome.DELIVERED.value,
            NotificationAttempt.sent_at >= since_utc,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one() or 0

    async def record(self, attempt: NotificationAttempt) -> bool:
        """Persist ``attempt``; False when another writer already claimed its key."""
        async with self._session_factory() as session:
            session.add(attempt)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "Attempt already recorded for event/user, keeping existing row",
                    event_id=attempt.event_id,
                    user_id=attempt.user_id,
                    outcome=attempt.outcome,
                )
                return False
        return True

    async def get_attempt(self, attempt_id: UUID) -> Optional[NotificationAttempt]:
        async with self._session_factory() as session:
            result = await session.execute(select(NotificationAttempt).filter(NotificationAttempt.id == attempt_id))
            return result.scalar_one_or_none()

    async def list_attempts(
        self,
        event_id: Optional[str] = None,
        user_id: Optional[str] = None,
        outcome: Optional[str] = None,
        limit: int = 100,
    ) -> List[NotificationAttempt]:
        query = select(NotificationAttempt)
        if event_id:
            query = query.filter(NotificationAttempt.event_id == event_id)
        if user_id:
            query = query.filter(NotificationAttempt.user_id == user_id)
        if outcome:
            query = query.filter(NotificationAttempt.outcome == outcome)
        query = query.order_by(NotificationAttempt.sent_at.desc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def stats(self) -> dict:
        stmt = select(NotificationAttempt.outcome, func.count(NotificationAttempt.id)).group_by(NotificationAttempt.outcome)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            by_outcome = {outcome.value: 0 for outcome in AttemptOutcome}
            for outcome, count in result.all():
                by_outcome[outcome] = count

        stats = {
            "total_attempts": sum(by_outcome.values()),
            "total_delivered": by_outcome[AttemptOutcome.DELIVERED.value],
            "total_failed": by_outcome[AttemptOutcome.FAILED.value],
            "total_skipped_duplicate": by_outcome[AttemptOutcome.SKIPPED_DUPLICATE.value],
            "by_outcome": by_outcome,
        }
        logger.info("Ledger stats retrieved", total_attempts=stats["total_attempts"])
        return stats
