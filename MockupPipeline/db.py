# db.py
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Import the centralized settings object
from settings import settings

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
DATABASE_URL = settings.DATABASE_URL

# The `settings.py` default is SQLite, which is fine for development.
# In production DATABASE_URL will be a PostgreSQL URL.
engine_options = {"echo": False}
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

if DATABASE_URL.startswith("postgresql+asyncpg://"):
    logger.info("✅ Connecting to PostgreSQL database.")
    # `pool_recycle` keeps idle connections from being dropped by the network
    # while the pipeline sits in its inter-group cooldown.
    engine_options.update(pool_size=5, max_overflow=5, pool_timeout=30, pool_recycle=1800)
else:
    logger.info("✅ Using local SQLite database for development.")


# --- SQLAlchemy Engine & Session ---

engine = create_async_engine(DATABASE_URL, **engine_options)

# `expire_on_commit=False` keeps loaded attributes readable after commit,
# which the pipeline relies on between its short-lived sessions.
async_session_maker = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Base class for declarative models. All models in `models.py` inherit from this.
Base = declarative_base()


async def init_models() -> None:
    """Create database tables if they do not exist yet."""
    # Imported for its side effect of registering the tables on Base.metadata.
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# --- FastAPI Dependency ---

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session to each request.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
