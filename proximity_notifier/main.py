from fastapi import FastAPI
from contextlib import asynccontextmanager
import httpx
from fastapi_limiter import FastAPILimiter
from redis.asyncio import Redis
from proximity_notifier.config import settings
from proximity_notifier.core.logging import configure_logging, logger
from proximity_notifier.database import AsyncSessionLocal, engine
from proximity_notifier.routers import attempts, events
from proximity_notifier.services.matching import build_matching_engine

# Configure logging
configure_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Proximity notifier starting up...")

    redis = Redis(host=settings.REDIS_HOST, port=settings.REDIS_PORT, db=0)
    await FastAPILimiter.init(redis)
    logger.info("FastAPI-Limiter initialized.")

    http_client = httpx.AsyncClient(timeout=settings.PER_SEND_TIMEOUT)
    app.state.matching_engine = build_matching_engine(settings, AsyncSessionLocal, http_client, redis)
    logger.info("Matching engine ready.", push_gateway=settings.PUSH_GATEWAY_URL, radius_km=settings.RADIUS_KM)

    yield

    logger.info("Proximity notifier shutting down...")
    await http_client.aclose()
    await FastAPILimiter.close()
    await engine.dispose()
    logger.info("Connections closed.")

app = FastAPI(lifespan=lifespan, title="Proximity Notifier", version="1.0.0")

app.include_router(events.router)
app.include_router(attempts.router)

@app.get("/health")
async def health_check():
    return {"status": "ok"}
