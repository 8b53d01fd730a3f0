"""
Application settings for the soil-temperature engine.

Values come from environment variables (or a ``.env`` file at the project
root), grouped by concern:

- database: SQLAlchemy connection URL
- earth_engine: Google Earth Engine service-account credentials
- soil_temperature: ERA5-Land dataset, coverage limits and cache policy

Usage:
    from config.settings.app_config import get_settings

    settings = get_settings()
    settings.soil_temperature.freshness_threshold
"""

from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class DatabaseSettings(BaseModel):
    """Relational store settings."""

    url: str = "sqlite:///./soiltemp.db"
    echo: bool = False


class EarthEngineSettings(BaseModel):
    """Service-account credentials for Google Earth Engine."""

    service_account_email: str | None = None
    private_key: str | None = None
    project_id: str | None = None
    init_timeout: float = 60.0

    @field_validator("private_key")
    @classmethod
    def _unescape_newlines(cls, value: str | None) -> str | None:
        # .env files usually carry the PEM key on a single line
        if value is None:
            return None
        return value.replace("\\n", "\n")

    def is_configured(self) -> bool:
        """True when all three credential values are present."""
        return bool(
            self.service_account_email and self.private_key and self.project_id
        )


class SoilTemperatureSettings(BaseModel):
    """ERA5-Land coverage limits and cache policy."""

    dataset: str = "ECMWF/ERA5_LAND/MONTHLY_AGGR"
    scale: int = 11132  # ~11 km
    data_source: str = "ERA5-Land"
    historical_start_date: date = date(1950, 1, 1)
    publication_delay_months: int = 3
    freshness_threshold: float = Field(default=0.10, gt=0.0, le=1.0)
    freshness_granularity: Literal["day", "month"] = "day"
    sync_timeout: float = 120.0


class Settings(BaseSettings):
    """Root settings object."""

    app_name: str = Field(default="SoilTemp", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str | None = Field(default=None, alias="LOG_DIR")
    json_logs: bool = Field(default=False, alias="JSON_LOGS")

    database_url: str = Field(
        default="sqlite:///./soiltemp.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    gee_service_account_email: str | None = Field(
        default=None, alias="GEE_SERVICE_ACCOUNT_EMAIL"
    )
    gee_private_key: str | None = Field(default=None, alias="GEE_PRIVATE_KEY")
    gee_project_id: str | None = Field(default=None, alias="GEE_PROJECT_ID")
    gee_init_timeout: float = Field(default=60.0, alias="GEE_INIT_TIMEOUT")

    soil_freshness_threshold: float = Field(
        default=0.10, alias="SOIL_FRESHNESS_THRESHOLD"
    )
    soil_publication_delay_months: int = Field(
        default=3, alias="SOIL_PUBLICATION_DELAY_MONTHS"
    )
    soil_sync_timeout: float = Field(default=120.0, alias="SOIL_SYNC_TIMEOUT")
    soil_freshness_granularity: Literal["day", "month"] = Field(
        default="day", alias="SOIL_FRESHNESS_GRANULARITY"
    )
    soil_historical_start_date: date = Field(
        default=date(1950, 1, 1), alias="SOIL_HISTORICAL_START_DATE"
    )
    soil_dataset: str = Field(
        default="ECMWF/ERA5_LAND/MONTHLY_AGGR", alias="SOIL_DATASET"
    )
    soil_scale: int = Field(default=11132, gt=0, alias="SOIL_SCALE")
    soil_data_source: str = Field(default="ERA5-Land", alias="SOIL_DATA_SOURCE")

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings(url=self.database_url, echo=self.database_echo)

    @property
    def earth_engine(self) -> EarthEngineSettings:
        return EarthEngineSettings(
            service_account_email=self.gee_service_account_email,
            private_key=self.gee_private_key,
            project_id=self.gee_project_id,
            init_timeout=self.gee_init_timeout,
        )

    @property
    def soil_temperature(self) -> SoilTemperatureSettings:
        return SoilTemperatureSettings(
            dataset=self.soil_dataset,
            scale=self.soil_scale,
            data_source=self.soil_data_source,
            historical_start_date=self.soil_historical_start_date,
            freshness_threshold=self.soil_freshness_threshold,
            freshness_granularity=self.soil_freshness_granularity,
            publication_delay_months=self.soil_publication_delay_months,
            sync_timeout=self.soil_sync_timeout,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton (call ``get_settings.cache_clear()`` in tests)."""
    return Settings()
