"""SQLAlchemy async engine and session factory."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()


def create_db_engine(url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Create the async engine.

    SQLite gets no pool sizing (it uses a single-file or in-memory pool);
    any other backend is pooled from settings.
    """
    url = url or settings.DATABASE_URL
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO)
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=1800,
        )
    kwargs.update(overrides)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory instances
engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def create_tables(target: AsyncEngine) -> None:
    from db.base import Base
    import db.models  # noqa: F401  registers every table on Base.metadata

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Create missing tables. Called once at application startup."""
    await create_tables(engine)


async def close_db() -> None:
    """Dispose the pool at application shutdown."""
    await engine.dispose()
