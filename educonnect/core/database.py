from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from .config import settings
import logging

logger = logging.getLogger(__name__)

ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def async_database_url(url: str) -> str:
    """Swap a plain postgres or sqlite scheme for its async driver. URLs naming a driver pass through."""
    scheme, sep, rest = url.partition("://")
    if not sep or "+" in scheme:
        return url
    return f"{ASYNC_DRIVERS.get(scheme, scheme)}://{rest}"


database_url = async_database_url(settings.database_url)

# Hosted Postgres drops idle connections, so nothing is pooled there
engine = create_async_engine(
    database_url,
    echo=settings.database_echo,
    poolclass=NullPool if database_url.startswith("postgresql") else None,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
)

Base = declarative_base()


async def get_db():
    """Request-scoped session; rolled back when the handler raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Rolling back session after error: {e}")
            await session.rollback()
            raise


async def create_tables(bind=None):
    """Create every EduConnect table on bind, or on the application engine."""
    target = bind or engine
    # registers the mappers on Base.metadata
    from .. import models  # noqa: F401

    try:
        async with target.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Schema ready: {len(Base.metadata.tables)} tables on {target.url.render_as_string()}")
    except Exception as e:
        logger.error(f"Error creating schema: {e}")
        raise


async def close_db():
    try:
        await engine.dispose()
        logger.info("Database engine disposed")
    except Exception as e:
        logger.error(f"Error disposing database engine: {e}")
