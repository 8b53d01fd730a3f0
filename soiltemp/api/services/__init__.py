"""
Soil temperature services.

ARCHITECTURE OVERVIEW:
======================
├── SoilTemperatureValidationService - Coverage/numeric validation
├── EarthEngineSessionManager        - Single-flight GEE session
├── EarthEngineRegionClient          - getRegion extraction
├── SoilTemperatureClient            - ERA5-Land reshaping (K → °C)
└── create_sync_service()            - Wiring for SoilTemperatureSyncService

ATTRIBUTION:
============
ERA5-Land data: Copernicus Climate Change Service (C3S), accessed through
Google Earth Engine.
"""

from soiltemp.api.services.earth_engine.earth_engine_client import (
    EarthEngineRegionClient,
    EarthEngineSessionManager,
)
from soiltemp.api.services.earth_engine.soil_temperature_client import (
    ERA5LandConfig,
    SoilTemperatureClient,
)
from soiltemp.api.services.soil_temperature_validation import (
    SoilTemperatureQuery,
    SoilTemperatureValidationService,
)

__all__ = [
    # Validation
    "SoilTemperatureQuery",
    "SoilTemperatureValidationService",
    # Earth Engine
    "EarthEngineSessionManager",
    "EarthEngineRegionClient",
    "ERA5LandConfig",
    "SoilTemperatureClient",
]
