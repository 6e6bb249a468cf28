"""
Event Rental API - Main Application Entry Point

Event organizing with vendor equipment rental, built around:
- Conditional atomic updates for equipment stock and event capacity
- A FIFO waitlist with automatic promotion on cancellation
- One transaction per reservation, side effects after commit
- Redis catalog caching, structured logging and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eventrental.core.config import get_settings
from eventrental.core.errors import ReservationError, reservation_error_handler
from eventrental.core.logging import setup_logging, get_logger
from eventrental.core.metrics import metrics_endpoint
from eventrental.api.router import api_router
from eventrental.api.middleware import RequestLoggingMiddleware
from eventrental.infrastructure.redis_client import get_redis, close_redis
from eventrental.services.cache_service import get_cache_stats

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        notification_backend=settings.NOTIFICATION_BACKEND,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without catalog cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event organizing and equipment rental API with consistent stock and capacity",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(ReservationError, reservation_error_handler)

app.include_router(api_router)


@app.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
