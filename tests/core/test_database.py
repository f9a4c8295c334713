from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from launchtest.config import Settings
from launchtest.core import database
from launchtest.models.decision import Decision


@pytest.fixture
async def memory_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    yield engine
    await engine.dispose()


async def _table_names(engine):
    async with engine.connect() as conn:
        return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())


class TestEngineOptions:
    def test_sqlite_skips_pool_sizing(self):
        options = database.engine_options(
            Settings(DATABASE_URL="sqlite+aiosqlite:///./launchtest.db", DEBUG=True)
        )

        assert options == {"echo": True}

    def test_server_database_gets_pool_sizing(self):
        options = database.engine_options(
            Settings(
                DATABASE_URL="postgresql+asyncpg://localhost/launchtest",
                DB_POOL_SIZE=3,
                DB_MAX_OVERFLOW=7,
            )
        )

        assert options == {"echo": False, "pool_size": 3, "max_overflow": 7}

    async def test_create_decision_engine_uses_database_url(self):
        engine = database.create_decision_engine(
            Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:")
        )

        assert engine.url.drivername == "sqlite+aiosqlite"
        await engine.dispose()


class TestDatabaseLifecycle:
    async def test_init_db_creates_decisions_table(self, memory_engine):
        await database.init_db(memory_engine)

        assert Decision.__tablename__ in await _table_names(memory_engine)

    async def test_init_db_defaults_to_module_engine(self, memory_engine):
        with patch.object(database, "engine", memory_engine):
            await database.init_db()

        assert Decision.__tablename__ in await _table_names(memory_engine)

    async def test_session_maker_keeps_objects_loaded_after_commit(self, memory_engine):
        session_maker = database.create_session_maker(memory_engine)

        async with session_maker() as session:
            assert isinstance(session, AsyncSession)
            assert session.sync_session.expire_on_commit is False

    async def test_close_db_disposes_engine(self):
        engine = MagicMock()
        engine.dispose = AsyncMock()

        with patch.object(database, "engine", engine):
            await database.close_db()

        engine.dispose.assert_awaited_once()
