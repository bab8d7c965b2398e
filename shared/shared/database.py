from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool


def get_engine(database_url: str, echo: bool = False):
    if database_url.startswith("sqlite"):
        # in-memory sqlite only survives on a single shared connection
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


Base = declarative_base()


def get_session(engine):
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
    )


async def advisory_xact_lock(session: AsyncSession, key: str) -> None:
    """
    Transaction-scoped lock on an arbitrary string key.

    Postgres only; released on commit/rollback. Other dialects serialise
    writers themselves, so this is a no-op there.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
