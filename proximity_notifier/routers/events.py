from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from fastapi_limiter.depends import RateLimiter
from sqlalchemy.exc import SQLAlchemyError
from proximity_notifier.config import settings
from proximity_notifier.core.logging import logger
from proximity_notifier.dependencies.auth import get_internal_caller
from proximity_notifier.dependencies.services import get_matching_engine
from proximity_notifier.schemas.event import Event
from proximity_notifier.schemas.notification import MatchingReport
from proximity_notifier.services.directory import DirectoryLookupError
from proximity_notifier.services.matching import MatchingEngine

router = APIRouter(prefix="/api/v1/events", tags=["events"])

async def rate_limit_callback(request: Request, response: Response, pexpire: int):
    """Custom callback for rate limit exceeded."""
    client_ip = request.client.host if request.client else "unknown"
    logger.warning("Rate limit exceeded", ip=client_ip, path=request.url.path, retry_after_ms=pexpire)
    raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too Many Requests")

webhook_rate_limiter = RateLimiter(times=settings.WEBHOOK_RATE_LIMIT_PER_MINUTE, seconds=60, callback=rate_limit_callback)

def _is_upcoming(event: Event) -> bool:
    occurs_at = event.occurs_at
    if occurs_at.tzinfo is None:
        occurs_at = occurs_at.replace(tzinfo=timezone.utc)
    return occurs_at > datetime.now(timezone.utc)

@router.post("/created", response_model=MatchingReport, dependencies=[Depends(webhook_rate_limiter)])
async def event_created(
    event: Event,
    caller: dict = Depends(get_internal_caller),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    """Match a newly created event against nearby users and push notifications."""
    if not _is_upcoming(event):
        logger.warning("Event already started, not matching", event_id=event.id, occurs_at=event.occurs_at.isoformat())
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Event occurs in the past",
        )
    try:
        return await engine.run(event)
    except DirectoryLookupError:
        logger.error("Matching aborted, user directory unavailable", event_id=event.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User directory unavailable, retry the event",
        )
    except SQLAlchemyError as e:
        logger.error("Matching aborted, notification ledger unavailable", event_id=event.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification ledger unavailable, retry the event",
        )
