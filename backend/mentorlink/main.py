# backend/mentorlink/main.py
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .core.broadcast import connect_broadcast, disconnect_broadcast
from .core.config import is_running_tests, settings
from .core.redis import close_async_redis_client, get_async_redis_client
from .errors import register_error_handlers
from .routes import health, messages, metrics, realtime
from .services.eligibility_service import check_pair_eligibility
from .services.messaging import RealtimeGateway, RealtimeRelay, set_gateway
from .services.presence import build_presence_directory

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

API_TITLE = "MentorLink Messaging API"
API_DESCRIPTION = "Direct messaging and realtime presence between mentors and students"


async def _build_relay() -> Optional[RealtimeRelay]:
    """Connect the cross-instance relay, or None to run local-only."""
    if not settings.relay_enabled:
        logger.info("[RELAY] No relay configured, realtime delivery is local to this instance")
        return None
    try:
        broadcast = await connect_broadcast()
    except Exception as e:
        logger.error(f"[RELAY] Failed to connect relay, continuing local-only: {e}")
        return None
    return RealtimeRelay(
        broadcast,
        channel=settings.realtime_relay_channel,
        instance_id=settings.realtime_instance_id,
    )


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("MentorLink messaging API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    redis_client = (
        await get_async_redis_client() if settings.presence_backend == "redis" else None
    )
    presence = build_presence_directory(settings, redis_client)
    relay = await _build_relay()

    gateway = RealtimeGateway(
        presence,
        relay=relay,
        eligibility=check_pair_eligibility,
        presence_ttl=settings.presence_ttl_seconds,
        presence_timeout=settings.presence_timeout_seconds,
    )
    try:
        await gateway.start()
    except Exception as e:
        logger.error(f"[RELAY] Relay subscription failed, continuing local-only: {e}")
        gateway.relay = None
        await gateway.start()
    set_gateway(gateway)

    yield

    logger.info("MentorLink messaging API shutting down...")
    set_gateway(None)
    await gateway.stop()

    try:
        await disconnect_broadcast()
    except Exception as e:
        logger.error(f"[RELAY] Error disconnecting broadcaster: {e}")

    await presence.close()
    if redis_client is not None:
        try:
            await close_async_redis_client()
        except Exception as e:
            logger.error(f"[PRESENCE] Error closing async Redis client: {e}")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

# Register unified error envelope handlers
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)
logger.info("CORS allow_origins=%s", settings.cors_allowed_origins)

app.include_router(messages.router, prefix="/messages")
app.include_router(realtime.router)
app.include_router(health.router)
app.include_router(metrics.router)
