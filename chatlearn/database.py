# chatlearn/database.py
import os
from contextlib import contextmanager
from typing import AsyncGenerator, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)

# ============================================================================
# EXECUTION CONTEXT
# ============================================================================

# Celery workers open a fresh connection per task instead of pooling
IS_CELERY_WORKER = os.environ.get('CELERY_WORKER', 'false').lower() == 'true'

IS_SQLITE = settings.DATABASE_URL.startswith("sqlite")


def _make_async_url(sync_url: str) -> str:
    """Swap the sync driver for its async counterpart"""
    if sync_url.startswith("postgresql://"):
        return sync_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if sync_url.startswith("sqlite:///"):
        return sync_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return sync_url


def _pool_kwargs() -> dict:
    if IS_SQLITE:
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 5,
        "pool_timeout": 10,
        "pool_recycle": 3600,
    }


# ============================================================================
# SYNC ENGINE (Celery workers, scripts)
# ============================================================================

if IS_CELERY_WORKER:
    engine = create_engine(settings.DATABASE_URL, poolclass=NullPool, pool_pre_ping=True)
else:
    engine = create_engine(settings.DATABASE_URL, **_pool_kwargs())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

# ============================================================================
# ASYNC ENGINE (FastAPI routes)
# ============================================================================

ASYNC_DATABASE_URL = settings.DATABASE_ASYNC_URL or _make_async_url(settings.DATABASE_URL)

async_engine = create_async_engine(ASYNC_DATABASE_URL, **_pool_kwargs())

async_session = async_sessionmaker(
    bind=async_engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


if IS_SQLITE:
    def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    event.listen(async_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)


logger.info(
    "Database engines configured",
    extra={"extra_data": {
        "context": "Celery Worker" if IS_CELERY_WORKER else "FastAPI API",
        "dialect": engine.dialect.name,
        "environment": settings.ENVIRONMENT
    }}
)

# ============================================================================
# BASE MODEL
# ============================================================================

Base = declarative_base()

# Register every model with Base.metadata
from .users import models as users_models  # noqa: E402,F401
from .projects import models as projects_models  # noqa: E402,F401
from .chats import models as chats_models  # noqa: E402,F401
from .subscriptions import models as subscriptions_models  # noqa: E402,F401
from .usage import models as usage_models  # noqa: E402,F401
from .favorites import models as favorites_models  # noqa: E402,F401
from .jobs import models as jobs_models  # noqa: E402,F401

# ============================================================================
# DEPENDENCIES
# ============================================================================

async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Async session dependency for routes.

    Usage:
        @router.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_db)):
            ...
    """
    async with async_session() as session:
        try:
            yield session
        except Exception as e:
            logger.error(
                "Error in async database session",
                extra={"extra_data": {"error": str(e)}},
            )
            await session.rollback()
            raise


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Sync session for Celery tasks.

    Usage:
        with get_db_session() as db:
            job = db.get(BackgroundJob, job_id)
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(
            "Database session error in worker",
            extra={"extra_data": {"error": str(e)}},
        )
        db.rollback()
        raise
    finally:
        db.close()


def create_tables():
    Base.metadata.create_all(bind=engine)


def close_all_sessions():
    """Dispose pooled connections on shutdown"""
    engine.dispose()
    logger.info("Database connections closed")
