import pytest
from sqlalchemy import text

from workflow_store.db import session as db_session


@pytest.fixture
def sqlite_env(monkeypatch, tmp_path):
    monkeypatch.setenv("POSTGRES_URL", f"sqlite+aiosqlite:///{tmp_path / 'session.db'}")
    yield


@pytest.mark.asyncio
async def test_engine_is_lazy_and_reused(sqlite_env):
    await db_session.dispose_engine()
    try:
        engine = db_session.get_engine()
        assert engine is db_session.get_engine()
        assert engine.dialect.name == "sqlite"
    finally:
        await db_session.dispose_engine()


@pytest.mark.asyncio
async def test_session_scope_rolls_back_on_error(sqlite_env):
    await db_session.dispose_engine()
    try:
        async with db_session.session_scope() as session:
            await session.execute(text("CREATE TABLE marker (id INTEGER PRIMARY KEY)"))
            await session.commit()

        with pytest.raises(RuntimeError):
            async with db_session.session_scope() as session:
                await session.execute(text("INSERT INTO marker (id) VALUES (1)"))
                raise RuntimeError("boom")

        async with db_session.session_scope() as session:
            result = await session.execute(text("SELECT count(*) FROM marker"))
            assert result.scalar_one() == 0
    finally:
        await db_session.dispose_engine()
