"""FastAPI dependency injection helpers."""

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database import async_session_factory
from src.infrastructure.redis_client import get_redis
from src.services.notifications import NotificationDispatcher, build_notifier


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error.

    Services commit their own unit of work before dispatching side effects;
    the trailing commit here only covers read-only requests.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


_notifier: NotificationDispatcher | None = None


def get_notifier() -> NotificationDispatcher:
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier


async def get_redis_client() -> aioredis.Redis:
    return await get_redis()
