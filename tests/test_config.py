import pytest

from workflow_store.core.json_merge import ArrayMergeOption
from workflow_store.core.settings import StoreSettings
from workflow_store.db.config import Settings

_DB_VARS = (
    "POSTGRES_URL",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "POSTGRES_DB",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _DB_VARS + ("LOG_LEVEL", "DEFAULT_ARRAY_MERGE_OPTION"):
        monkeypatch.delenv(name, raising=False)


def test_url_from_parts(monkeypatch):
    monkeypatch.setenv("POSTGRES_USER", "wf")
    monkeypatch.setenv("POSTGRES_PASSWORD", "secret")
    monkeypatch.setenv("POSTGRES_DB", "workflows")
    monkeypatch.setenv("POSTGRES_HOST", "db")

    settings = Settings(_env_file=None)

    assert settings.database_url == "postgresql://wf:secret@db:5432/workflows"
    assert settings.async_database_url == "postgresql+asyncpg://wf:secret@db:5432/workflows"
    assert settings.is_postgres


@pytest.mark.parametrize(
    "url, async_url, sync_url",
    [
        ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db", "postgresql://u:p@h/db"),
        ("postgresql+psycopg://u:p@h/db", "postgresql+asyncpg://u:p@h/db", "postgresql://u:p@h/db"),
        ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db", "postgresql://u:p@h/db"),
    ],
)
def test_url_variants(monkeypatch, url, async_url, sync_url):
    monkeypatch.setenv("POSTGRES_URL", url)

    settings = Settings(_env_file=None)

    assert settings.async_database_url == async_url
    assert settings.sync_database_url == sync_url


def test_non_postgres_url_is_left_alone(monkeypatch):
    monkeypatch.setenv("POSTGRES_URL", "sqlite+aiosqlite:///./store.db")

    settings = Settings(_env_file=None)

    assert settings.async_database_url == "sqlite+aiosqlite:///./store.db"
    assert not settings.is_postgres


def test_missing_configuration_raises():
    with pytest.raises(ValueError, match="Database configuration missing"):
        Settings(_env_file=None).database_url


def test_store_settings_from_env(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("DEFAULT_ARRAY_MERGE_OPTION", "concat")

    settings = StoreSettings(_env_file=None)

    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.DEFAULT_ARRAY_MERGE_OPTION is ArrayMergeOption.CONCAT
