"""adcache — FastAPI Application Entry Point.

Multi-tier ad reporting cache: smart caches per platform and period, daily
aggregation with stale fallback, period archival and cross-platform totals.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from adcache.config import settings
from adcache.database import init_db, test_connection, session_factory
from adcache.core.container import build_container, set_container
from adcache.scheduler.jobs import start_scheduler, stop_scheduler
from adcache.api.cache_routes import router as cache_router
from adcache.api.admin_routes import router as admin_router
from adcache.core.logging import get_logger

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 adcache starting up...")
    if test_connection():
        try:
            init_db()
        except SQLAlchemyError as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected; cache reads will degrade to live fetches")

    set_container(build_container(session_factory, settings))
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    set_container(None)
    logger.info("adcache shut down")


app = FastAPI(
    title="adcache",
    description="Multi-tier caching and period aggregation for Meta and Google Ads reporting.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cache_router)
app.include_router(admin_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "adcache", "version": "1.0.0"}
