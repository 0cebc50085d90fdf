"""Async database engine and session factory."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from plansync.core.config import Settings, get_settings

settings = get_settings()


def engine_options(cfg: Settings) -> dict:
    """Pool and statement bounds for the configured driver."""
    options: dict = {
        "echo": False,
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": cfg.database_pool_timeout,
    }
    if cfg.database_url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"command_timeout": cfg.database_statement_timeout}
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings))

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create all tables. Use Alembic migrations in production."""
    import plansync.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
