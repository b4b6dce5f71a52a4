from fastapi import APIRouter, Depends, HTTPException, status, Query
from uuid import UUID
from typing import List, Optional
from proximity_notifier.dependencies.auth import get_admin_caller
from proximity_notifier.dependencies.services import get_ledger
from proximity_notifier.models.notification_attempt import AttemptOutcome
from proximity_notifier.schemas.notification import NotificationAttemptResponse, LedgerStatsResponse
from proximity_notifier.services.ledger import NotificationLedger

router = APIRouter(prefix="/api/v1/notification-attempts", tags=["notification-attempts"])

@router.get("", response_model=List[NotificationAttemptResponse])
async def list_attempts(
    caller: dict = Depends(get_admin_caller),
    ledger: NotificationLedger = Depends(get_ledger),
    event_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    outcome: Optional[AttemptOutcome] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
):
    """List ledger rows, newest first, optionally filtered by event, user and outcome."""
    attempts = await ledger.list_attempts(
        event_id=event_id,
        user_id=user_id,
        outcome=outcome.value if outcome else None,
        limit=limit,
    )
    return [NotificationAttemptResponse.model_validate(a) for a in attempts]

@router.get("/stats", response_model=LedgerStatsResponse)
async def attempt_stats(caller: dict = Depends(get_admin_caller), ledger: NotificationLedger = Depends(get_ledger)):
    """Aggregate counts of ledger rows per outcome."""
    return LedgerStatsResponse.model_validate(await ledger.stats())

@router.get("/{attempt_id}", response_model=NotificationAttemptResponse)
async def get_attempt(attempt_id: UUID, caller: dict = Depends(get_admin_caller), ledger: NotificationLedger = Depends(get_ledger)):
    attempt = await ledger.get_attempt(attempt_id)
    if not attempt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification attempt not found")
    return NotificationAttemptResponse.model_validate(attempt)
