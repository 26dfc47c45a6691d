from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from chorechamp.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy ORM models."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency that yields an async database session.

    One request is one unit of work: everything flushed by the services is
    committed together, or rolled back together when anything raises.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def dialect_name(db: AsyncSession) -> str:
    """Name of the SQL dialect the session is bound to ('postgresql', 'sqlite', ...)."""
    return db.get_bind().dialect.name


async def set_lock_timeout(db: AsyncSession) -> None:
    """Bound how long the current transaction waits for row locks (PostgreSQL only)."""
    if dialect_name(db) == "postgresql":
        await db.execute(text(f"SET LOCAL lock_timeout = '{int(settings.LOCK_TIMEOUT_MS)}ms'"))
