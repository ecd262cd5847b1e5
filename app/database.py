"""
Database connection setup using async SQLAlchemy with PostgreSQL.

Provides the async engine, the session factory used by
``SqlAlchemyTransferRepository`` and the declarative base for the
transfer models. Route handlers never open sessions directly.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    pool_size=settings.DATABASE_POOL_SIZE,
    pool_pre_ping=True,
    echo=settings.DEBUG,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def dispose_engine() -> None:
    """Close pooled connections (application shutdown)."""
    await engine.dispose()
