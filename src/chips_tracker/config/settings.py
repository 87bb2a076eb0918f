"""Configuration settings for the CHIPS tracker core."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Process settings read from the environment (or a .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote store
    web_app_url: str = Field(default="", validation_alias="CHIPS_WEB_APP_URL")
    request_timeout: float = Field(
        default=30.0, validation_alias="CHIPS_REQUEST_TIMEOUT"
    )

    # Local persistence
    data_dir: Path = Field(default=Path(".chips"), validation_alias="CHIPS_DATA_DIR")

    # Sync behaviour
    auto_sync_interval: float = Field(
        default=30.0, validation_alias="CHIPS_AUTO_SYNC_INTERVAL"
    )

    # Display
    currency: str = Field(default="₱", validation_alias="CHIPS_CURRENCY")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


class Settings(BaseModel):
    """User-editable settings persisted in the local settings slot."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    web_app_url: str = Field(default="", alias="webAppUrl")
    auto_sync: bool = Field(default=True, alias="autoSync")

    @property
    def is_configured(self) -> bool:
        return bool(self.web_app_url.strip())

    def to_slot(self) -> dict[str, object]:
        """Serialize using the camelCase slot layout."""
        return self.model_dump(by_alias=True)


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
