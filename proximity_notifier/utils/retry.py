import asyncio
import structlog
from functools import wraps

logger = structlog.get_logger("proximity_notifier.retry")

def async_retry(tries=2, delay=1, backoff=2, exceptions=(Exception,), service="push_gateway"):
    """Retry ``func`` on ``exceptions`` with exponential backoff; ``tries`` counts the first call."""
    def deco(func):
        @wraps(func)
        async def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    logger.warning("Exception during retry", error=str(e), delay=mdelay, error_type=type(e).__name__, service=service)
                    await asyncio.sleep(mdelay)
                    mtries -= 1
                    mdelay *= backoff

            return await func(*args, **kwargs) # Last attempt
        return f_retry
    return deco
