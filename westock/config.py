"""
Runtime configuration read from the environment.

The remote store and the image classifier are optional: when their
settings are absent the app keeps working locally.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORAGE_QUOTA_BYTES = 5 * 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        frozen=True,
    )

    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".westock",
        validation_alias="WESTOCK_DATA_DIR",
        description="Directory holding the local database",
    )
    storage_quota_bytes: int = Field(
        default=DEFAULT_STORAGE_QUOTA_BYTES,
        gt=0,
        validation_alias="WESTOCK_STORAGE_QUOTA_BYTES",
        description="Largest serialized document the local store accepts",
    )

    cosmosdb_endpoint: Optional[str] = Field(default=None, validation_alias="COSMOSDB_ENDPOINT")
    cosmosdb_key: Optional[str] = Field(default=None, validation_alias="COSMOSDB_KEY")
    cosmosdb_database: str = Field(default="westock", validation_alias="COSMOSDB_DATABASE")
    container_user_documents: str = Field(
        default="user_documents", validation_alias="COSMOSDB_CONTAINER_USER_DOCUMENTS"
    )
    container_shares: str = Field(
        default="shares", validation_alias="COSMOSDB_CONTAINER_SHARES"
    )
    container_share_items: str = Field(
        default="share_items", validation_alias="COSMOSDB_CONTAINER_SHARE_ITEMS"
    )

    gemini_api_key: Optional[str] = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")

    @field_validator("data_dir")
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("cosmosdb_endpoint", "cosmosdb_key", "gemini_api_key")
    @classmethod
    def empty_as_unset(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def remote_configured(self) -> bool:
        return bool(self.cosmosdb_endpoint)

    @property
    def database_path(self) -> Path:
        return self.data_dir / "westock.db"


@lru_cache()
def get_settings() -> Settings:
    """
    Application settings (cached).

    Call get_settings.cache_clear() to reload after the environment changes.
    """
    return Settings()
