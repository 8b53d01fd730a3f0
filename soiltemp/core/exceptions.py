"""
Error taxonomy for soil-temperature synchronization.

Every error carries a stable ``code`` so callers (HTTP layer, workers)
can map failures without matching on message text.
"""

from typing import Any


class SoilTemperatureError(Exception):
    """Base class for all engine errors."""

    code = "soil_temperature_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidQueryError(SoilTemperatureError):
    """Query failed validation. Carries every violation, not just the first."""

    code = "invalid_query"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid query: {'; '.join(self.errors)}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}


class LocationNotFoundError(SoilTemperatureError):
    """Location missing, inactive, or owned by someone else."""

    code = "location_not_found"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(f"Location {location_id} not found or not authorized")


class ProviderConfigError(SoilTemperatureError):
    """Provider credentials are not configured."""

    code = "provider_not_configured"


class ProviderAuthError(SoilTemperatureError):
    """Authentication handshake with the provider failed."""

    code = "provider_auth_failed"


class ProviderQueryError(SoilTemperatureError):
    """Region extraction failed after a successful handshake."""

    code = "provider_query_failed"


class ProviderTimeoutError(SoilTemperatureError):
    """Synchronization exceeded the caller's time budget."""

    code = "provider_timeout"


class PersistenceError(SoilTemperatureError):
    """A store write failed. ``persisted_rows`` holds what was written first."""

    code = "persistence_failed"

    def __init__(self, message: str, persisted_rows: list | None = None):
        super().__init__(message)
        self.persisted_rows = list(persisted_rows or [])

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "persisted_count": len(self.persisted_rows),
        }
