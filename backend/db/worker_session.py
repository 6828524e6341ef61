"""Worker-safe database access for Celery tasks.

Celery tasks run each job in a brand-new event loop, and pooled async
connections cannot cross loops. ``worker_session_factory`` builds a
private engine for the duration of one job and disposes it afterwards.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.database import create_db_engine, create_session_factory


@asynccontextmanager
async def worker_session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a session factory bound to a short-lived engine.

    Usage:
        async with worker_session_factory() as factory:
            container = build_container(factory)
            ...
    """
    engine = create_db_engine()
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()
