# chatlearn/main.py

from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI

from .config import settings
from .logging_config import setup_logging, get_logger
from .error_handlers import register_exception_handlers
from .middleware import register_middleware
from .rate_limit import register_rate_limiting
from .database import create_tables, close_all_sessions

# Import routers
from .orchestration.router import router as chat_pipeline_router
from .images.router import router as images_router
from .webhooks.router import router as webhooks_router
from .speech.router import router as speech_router
from .subscriptions.router import router as subscriptions_router
from .users.router import router as users_router
from .chats.router import router as chats_router
from .projects.router import router as projects_router
from .favorites.router import router as favorites_router
from .usage.router import router as usage_router
from .jobs.router import router as jobs_router
from .ai.router import router as models_router

logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ========================================================================
    # STARTUP
    # ========================================================================
    logger.info("="*80)
    logger.info("Starting ChatLearn API")
    logger.info("="*80)

    logger.info(
        "Application configuration",
        extra={
            "extra_data": {
                "environment": settings.ENVIRONMENT,
                "log_level": settings.LOG_LEVEL,
                "database": settings.DATABASE_URL.split("@")[-1],
                "celery_broker": settings.CELERY_BROKER_URL.split("@")[-1] if settings.CELERY_BROKER_URL else "Not configured",
                "celery_eager": settings.CELERY_TASK_ALWAYS_EAGER,
                "rate_limiting": settings.RATE_LIMIT_ENABLED,
            }
        }
    )

    try:
        create_tables()
        logger.info("✓ Database tables ready")
    except Exception as e:
        logger.error(f"✗ Database initialization failed: {e}", exc_info=True)
        raise

    # Broker and rate limit storage; requests still work without it in eager mode
    if not settings.CELERY_TASK_ALWAYS_EAGER:
        try:
            redis_client = redis.from_url(settings.REDIS_URL)
            redis_client.ping()
            logger.info("✓ Redis connection successful")
        except redis.RedisError as e:
            logger.warning(f"⚠ Redis connection failed: {e}")

    logger.info("ChatLearn API is ready to accept requests")

    yield

    # ========================================================================
    # SHUTDOWN
    # ========================================================================
    logger.info("Shutting down ChatLearn API")
    close_all_sessions()


# ============================================================================
# CREATE FASTAPI APP
# ============================================================================

# Setup logging BEFORE creating the app
setup_logging()

app = FastAPI(
    title="ChatLearn API",
    description="Multi-model chat orchestration with image, speech and webhook ingestion",
    version=VERSION,
    lifespan=lifespan,
)

register_middleware(app)
register_exception_handlers(app)
register_rate_limiting(app)

# ============================================================================
# REGISTER ROUTERS
# ============================================================================

app.include_router(chat_pipeline_router, prefix='/api')
app.include_router(images_router, prefix='/api')
app.include_router(webhooks_router, prefix='/api')
app.include_router(speech_router, prefix='/api')
app.include_router(subscriptions_router, prefix='/api')
app.include_router(users_router, prefix='/api')
app.include_router(chats_router, prefix='/api')
app.include_router(projects_router, prefix='/api')
app.include_router(favorites_router, prefix='/api')
app.include_router(usage_router, prefix='/api')
app.include_router(jobs_router, prefix='/api')
app.include_router(models_router, prefix='/api')

logger.info("All routers registered")


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers"""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": VERSION
    }


@app.get("/")
async def root():
    return {
        "message": "ChatLearn API",
        "version": VERSION,
        "docs": "/docs"
    }
