from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from souqpay.core.config import settings


def make_engine(database_url: str | None = None) -> AsyncEngine:
    # DATABASE_URL must use an async driver (postgresql+asyncpg://)
    return create_async_engine(database_url or settings.DATABASE_URL, future=True, echo=False)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False)
