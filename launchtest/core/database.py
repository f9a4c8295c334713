from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from launchtest.config import Settings, get_settings


def engine_options(settings: Settings) -> dict:
    options = {"echo": settings.DEBUG}
    # SQLite uses its own pool classes, which reject sizing arguments
    if not settings.DATABASE_URL.startswith("sqlite"):
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    return options


def create_decision_engine(settings: Settings) -> AsyncEngine:
    """Engine for the decisions store described by ``settings``."""
    return create_async_engine(settings.DATABASE_URL, **engine_options(settings))


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    # Decisions stay readable after commit for logging and snapshots
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_decision_engine(get_settings())
async_session_maker = create_session_maker(engine)

Base = declarative_base()


async def init_db(bind: Optional[AsyncEngine] = None):
    """Create the decisions tables on ``bind`` (the default engine if omitted)."""
    # Registers the Decision table on Base.metadata
    import launchtest.models.decision  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()
