"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pushrelay import __version__
from pushrelay.api import notify, subscribe
from pushrelay.config import get_settings
from pushrelay.exceptions import RelayError
from pushrelay.services.mastodon import MastodonClient
from pushrelay.services.push_provider import FcmPushProvider
from pushrelay.services.store import SubscriptionStore, create_redis

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process-wide collaborators once and release them on shutdown."""
    redis_client = create_redis()
    app.state.store = SubscriptionStore(redis_client)
    app.state.push_provider = FcmPushProvider.from_settings()
    app.state.mastodon = MastodonClient()
    logger.info(f"Relay started in {settings.environment} mode")
    yield
    await redis_client.aclose()


app = FastAPI(
    title="Push Relay",
    description="Relays encrypted Mastodon Web Push deliveries to Firebase Cloud Messaging",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render relay errors as a machine-readable kind plus detail."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.kind}")
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


# Register routers
app.include_router(subscribe.router)
app.include_router(notify.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "environment": settings.environment}
