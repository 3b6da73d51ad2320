from __future__ import annotations

from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from workflow_store.core.settings import StoreSettings
from workflow_store.db.base import Base
from workflow_store.db import models  # noqa: F401
from workflow_store.repositories.workflow_runtime_data import WorkflowRuntimeDataRepository
from workflow_store.schemas.workflow import BusinessRef, WorkflowRuntimeDataCreate

PROJECT_A = "project_a"
PROJECT_B = "project_b"


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    maker = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    async with maker() as session:
        yield session


@pytest.fixture
def store_settings() -> StoreSettings:
    return StoreSettings(_env_file=None)


@pytest.fixture
def repo(session, store_settings) -> WorkflowRuntimeDataRepository:
    return WorkflowRuntimeDataRepository(session, settings=store_settings)


def make_payload(**overrides) -> WorkflowRuntimeDataCreate:
    data = {
        "project_id": PROJECT_A,
        "workflow_definition_id": "kyb_onboarding",
        "entity": BusinessRef(id="biz_1"),
        "context": {"documents": [{"type": "passport"}], "entity": {"name": "Acme"}},
        "created_at": datetime(2024, 1, 1, 12, 0, 0),
    }
    data.update(overrides)
    return WorkflowRuntimeDataCreate(**data)


@pytest.fixture
def payload():
    return make_payload
