"""
Async SQLAlchemy engine and session factory.

Every public engine operation runs inside one session, i.e. one
transaction.  Row locks taken with ``SELECT ... FOR UPDATE`` are held until
that session commits or rolls back.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

# Objects stay readable after commit so notifications and responses can
# use them without another round-trip.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for users, rides, bookings and the job ledger."""
