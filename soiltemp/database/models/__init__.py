# Both models must be registered before mappers resolve relationships
from soiltemp.database.models.location import Location
from soiltemp.database.models.soil_temperature import SoilTemperature

__all__ = ["Location", "SoilTemperature"]
