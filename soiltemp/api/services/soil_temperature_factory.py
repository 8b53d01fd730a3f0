"""
Factory for the soil temperature sync service with dependency injection.

Main responsibilities:
- Keep one EarthEngineSessionManager per process (single-flight session)
- Wire settings, database session factory, repositories and clients
- Reset shared state for tests and restarts
"""

from functools import lru_cache

from loguru import logger
from sqlalchemy.engine import Engine

from config.settings.app_config import get_settings
from soiltemp.api.services.earth_engine.earth_engine_client import (
    EarthEngineRegionClient,
    EarthEngineSessionManager,
)
from soiltemp.api.services.earth_engine.soil_temperature_client import (
    ERA5LandConfig,
    SoilTemperatureClient,
)
from soiltemp.core.sync.freshness_policy import FreshnessPolicy
from soiltemp.core.sync.soil_temperature_sync import SoilTemperatureSyncService
from soiltemp.database.connection import get_engine, make_session_factory
from soiltemp.database.repositories.location_repository import LocationRepository
from soiltemp.database.repositories.soil_temperature_repository import (
    SoilTemperatureRepository,
)


@lru_cache(maxsize=1)
def get_session_manager() -> EarthEngineSessionManager:
    """
    Process-wide Earth Engine session manager.

    Uses @lru_cache instead of a mutable module global.
    """
    manager = EarthEngineSessionManager(get_settings().earth_engine)
    logger.info("EarthEngineSessionManager singleton created")
    return manager


def create_soil_temperature_client() -> SoilTemperatureClient:
    soil = get_settings().soil_temperature
    config = ERA5LandConfig(
        dataset=soil.dataset, scale=soil.scale, data_source=soil.data_source
    )
    return SoilTemperatureClient(
        region_client=EarthEngineRegionClient(dataset=config.dataset),
        config=config,
    )


def create_sync_service(engine: Engine | None = None) -> SoilTemperatureSyncService:
    """
    Build a fully wired SoilTemperatureSyncService.

    Args:
        engine: SQLAlchemy engine (defaults to the settings engine)
    """
    soil = get_settings().soil_temperature
    session_factory = make_session_factory(engine or get_engine())

    service = SoilTemperatureSyncService(
        location_repository=LocationRepository(session_factory),
        soil_repository=SoilTemperatureRepository(session_factory),
        session_manager=get_session_manager(),
        soil_client=create_soil_temperature_client(),
        freshness_policy=FreshnessPolicy(
            threshold=soil.freshness_threshold,
            granularity=soil.freshness_granularity,
        ),
        timeout=soil.sync_timeout,
        publication_delay_months=soil.publication_delay_months,
        historical_start_date=soil.historical_start_date,
    )
    logger.debug("SoilTemperatureSyncService created")
    return service


def reset_shared_state() -> None:
    """Drop cached singletons (tests, restarts)."""
    if get_session_manager.cache_info().currsize:
        get_session_manager().reset()
    get_session_manager.cache_clear()
    get_settings.cache_clear()
    get_engine.cache_clear()
    logger.info("Soil temperature factory: shared state cleared")
