from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_store.core.json_merge import ArrayMergeOption


class StoreSettings(BaseSettings):
    """
    Library-level settings for the workflow runtime store.

    This is separate from workflow_store.db.config.Settings, which focuses on the
    database connection.
    """

    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    DEFAULT_ARRAY_MERGE_OPTION: ArrayMergeOption = Field(
        default=ArrayMergeOption.BY_ID,
        description="Array merge strategy used when a caller does not pass one.",
    )
    SEARCH_DEFAULT_ORDER_BY: str = Field(
        default="created_at:desc",
        description="Order token used by search queries that do not specify one.",
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v):
        """Accept log levels in any case."""
        if v is None:
            return "INFO"
        return str(v).strip().upper() or "INFO"


# PUBLIC_INTERFACE
def get_store_settings() -> StoreSettings:
    """
    Return a new StoreSettings instance populated from environment variables.
    """
    return StoreSettings()
