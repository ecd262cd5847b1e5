"""
PaymentsWithoutBorders — FastAPI application entry point.

Configures the app, middleware, and registers all API routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api import parties, rates, transfers
from app.transfers.config import get_engine_config

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup: build the engine config snapshot once, flag unsafe switches
    config = get_engine_config()
    logger.info(
        "Starting %s: participant %s, scheme %s, limits [%s, %s]",
        settings.APP_NAME, config.source_fsp_id,
        "mock" if settings.MOJALOOP_MOCK else settings.MOJALOOP_HUB_ENDPOINT,
        config.limits.min_amount, config.limits.max_amount,
    )
    if config.production:
        for flag in ("SKIP_COMPLIANCE_CHECKS", "FX_RATE_ALLOW_DEFAULT", "MOJALOOP_MOCK"):
            if getattr(settings, flag):
                logger.warning("%s is enabled in production", flag)

    yield

    # Shutdown: close connections
    from app.database import dispose_engine
    from app.redis_client import close_redis

    await dispose_engine()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    description="Cross-border transfers over a Mojaloop-style payment scheme.",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routers ---
app.include_router(transfers.router, prefix="/api/v1/transfers", tags=["Transfers"])
app.include_router(rates.router, prefix="/api/v1/rates", tags=["Rates"])
app.include_router(parties.router, prefix="/api/v1/parties", tags=["Parties"])


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": "0.1.0",
    }
