"""
PadelXP API Server

FastAPI server for padel clubs: match records, leaderboards, challenges,
subscriptions and tournaments.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.api.routes import router, limiter as routes_limiter
from padelxp.database import db
from padelxp.database.db import get_db_session
from padelxp.database.init_defaults import init_defaults
from padelxp.models.schemas import HealthResponse
from padelxp.services import settings_service

# Log level from the environment; the database setting is applied after startup
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def _apply_log_level_setting():
    async with db.AsyncSessionLocal() as session:
        log_level_setting = await settings_service.get_setting_value(session, "log_level")
    if log_level_setting:
        level_name = log_level_setting.upper()
        logging.getLogger().setLevel(getattr(logging, level_name, logging.INFO))
        logger.info(f"Log level set from database: {level_name}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up PadelXP API...")

    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    try:
        await init_defaults()
        await _apply_log_level_setting()
    except Exception as e:
        logger.error(f"Failed to initialize defaults: {e}", exc_info=True)

    yield

    logger.info("Shutting down PadelXP API...")
    try:
        await settings_service.close_redis_connection()
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)


app = FastAPI(
    title="PadelXP API",
    description="API for padel clubs: matches, leaderboards, challenges, subscriptions and tournaments",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/api/health", response_model=HealthResponse)
async def health_check(session: AsyncSession = Depends(get_db_session)):
    """Service status including database connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        return HealthResponse(status="healthy", database="connected", message="API is running")
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return HealthResponse(status="unhealthy", database="unavailable", message=f"Error: {str(e)}")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
