"""
Soil temperature synchronization (location → cache or ERA5-Land → stats).

Flow per request:
    VALIDATING -> CACHE_HIT -> AGGREGATING -> DONE
    VALIDATING -> FETCHING -> PERSISTING -> AGGREGATING -> DONE
    any state -> FAILED

1. Check date format and order
2. Resolve the location (must be active and owned by the caller)
3. Validate coordinates and dates against ERA5-Land coverage
4. Unless force_refresh, reuse cached rows when FreshnessPolicy allows
5. Otherwise fetch from Earth Engine and upsert every row
6. Aggregate per depth level and return with provenance

A request with latitude/longitude instead of a location_id skips steps
2, 4 and the upsert: the provider rows are summarized and returned as-is.

sync() never raises: every failure becomes a SyncResult with
success=False and a stable error_code. Rows upserted before a failure
or timeout stay persisted.
"""

import asyncio
from datetime import date
from enum import StrEnum
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from soiltemp.api.services.earth_engine.earth_engine_client import (
    EarthEngineSessionManager,
)
from soiltemp.api.services.earth_engine.soil_temperature_client import (
    SoilTemperatureClient,
    SoilTemperatureData,
)
from soiltemp.api.services.soil_temperature_validation import (
    SoilTemperatureQuery,
    SoilTemperatureValidationService,
)
from soiltemp.core.data_processing.soil_temperature_stats import (
    AggregatedStats,
    is_post_biochar,
    summarize,
    summarize_biochar_periods,
)
from soiltemp.core.exceptions import (
    InvalidQueryError,
    LocationNotFoundError,
    PersistenceError,
    ProviderTimeoutError,
    SoilTemperatureError,
)
from soiltemp.core.sync.freshness_policy import FreshnessPolicy
from soiltemp.database.models.location import Location
from soiltemp.database.models.soil_temperature import SoilTemperature
from soiltemp.database.repositories.location_repository import LocationRepository
from soiltemp.database.repositories.soil_temperature_repository import (
    SoilTemperatureRepository,
)

NO_DATA_MESSAGE = (
    "No soil temperature data available for the selected range. "
    "ERA5-Land publishes data with a delay of about {months} months; "
    "try an earlier end date."
)


class SyncState(StrEnum):
    VALIDATING = "validating"
    CACHE_HIT = "cache_hit"
    FETCHING = "fetching"
    PERSISTING = "persisting"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


class SyncRequest(BaseModel):
    """
    Caller-facing sync request.

    Targets either a registered location (cached, persisted) or raw
    coordinates (provider only, nothing persisted).
    """

    location_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    start_date: date | str
    end_date: date | str
    force_refresh: bool = False

    @model_validator(mode="after")
    def _check_target(self) -> "SyncRequest":
        has_point = self.latitude is not None and self.longitude is not None
        if self.location_id is None and not has_point:
            raise ValueError("location_id or both latitude and longitude are required")
        return self

    @property
    def is_coordinate_query(self) -> bool:
        return self.location_id is None


class SyncResult(BaseModel):
    """Tagged outcome of a sync, success or failure."""

    success: bool
    data: list[dict[str, Any]] = Field(default_factory=list)
    stats: AggregatedStats | None = None
    provenance: Literal["cache", "provider"] | None = None
    state: SyncState = SyncState.DONE
    message: str | None = None
    error: str | None = None
    error_code: str | None = None
    errors: list[str] = Field(default_factory=list)
    persisted_count: int = 0
    location: dict[str, Any] | None = None
    biochar: dict[str, Any] | None = None
    biochar_periods: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class _SyncContext:
    """Per-request mutable state (current step, rows persisted so far)."""

    def __init__(self, request: SyncRequest):
        self.request = request
        self.state = SyncState.VALIDATING
        self.persisted: list[dict[str, Any]] = []

    def advance(self, state: SyncState) -> None:
        logger.bind(location_id=self.request.location_id).debug(
            f"Sync state {self.state} -> {state}"
        )
        self.state = state


class SoilTemperatureSyncService:
    """Orchestrates validation, cache reuse, extraction and persistence."""

    def __init__(
        self,
        location_repository: LocationRepository,
        soil_repository: SoilTemperatureRepository,
        session_manager: EarthEngineSessionManager,
        soil_client: SoilTemperatureClient,
        freshness_policy: FreshnessPolicy | None = None,
        timeout: float | None = None,
        publication_delay_months: int = 3,
        historical_start_date: date | None = None,
    ):
        self.location_repository = location_repository
        self.soil_repository = soil_repository
        self.session_manager = session_manager
        self.soil_client = soil_client
        self.freshness_policy = freshness_policy or FreshnessPolicy()
        self.timeout = timeout
        self.publication_delay_months = publication_delay_months
        # None falls back to the settings floor
        self.historical_start_date = historical_start_date

    @property
    def data_source(self) -> str:
        return self.soil_client.config.data_source

    async def sync(
        self,
        request: SyncRequest,
        owner_id: str | None = None,
        timeout: float | None = None,
    ) -> SyncResult:
        """
        Run one synchronization.

        Args:
            request: Location and date range
            owner_id: Caller; the location must belong to them (None skips
                the ownership check)
            timeout: Overall time budget in seconds (defaults to the
                service timeout, None = unbounded)

        Returns:
            SyncResult (never raises for engine errors)
        """
        context = _SyncContext(request)
        budget = timeout if timeout is not None else self.timeout
        log = logger.bind(
            location_id=request.location_id,
            start=str(request.start_date),
            end=str(request.end_date),
            force_refresh=request.force_refresh,
        )

        try:
            result = await asyncio.wait_for(
                self._run(context, owner_id), timeout=budget
            )
        except asyncio.TimeoutError:
            error = ProviderTimeoutError(
                f"Soil temperature sync timed out after {budget}s "
                f"(during {context.state})"
            )
            log.error(error.message)
            return self._failure(context, error)
        except SoilTemperatureError as e:
            log.warning(f"Soil temperature sync failed [{e.code}]: {e.message}")
            return self._failure(context, e)
        except Exception as e:
            log.exception(f"Unexpected soil temperature sync error: {e}")
            context.advance(SyncState.FAILED)
            return SyncResult(
                success=False,
                state=SyncState.FAILED,
                error=str(e),
                error_code="internal_error",
                persisted_count=len(context.persisted),
            )

        log.bind(provenance=result.provenance, rows=len(result.data)).info(
            "Soil temperature sync finished"
        )
        return result

    async def _run(self, context: _SyncContext, owner_id: str | None) -> SyncResult:
        request = context.request

        # Malformed or reversed dates are rejected before any lookup
        date_errors = SoilTemperatureValidationService.validate_date_range(
            request.start_date, request.end_date
        )
        if date_errors:
            raise InvalidQueryError(date_errors)

        if request.is_coordinate_query:
            return await self._run_coordinates(context)

        location = await asyncio.to_thread(
            self.location_repository.get, request.location_id, owner_id
        )
        if location is None:
            raise LocationNotFoundError(request.location_id)

        start, end = self._validate(request, location.latitude, location.longitude)

        if not request.force_refresh:
            cached = await self._read_cache(location, start, end)
            if cached is not None:
                context.advance(SyncState.CACHE_HIT)
                return self._complete(context, location, cached, "cache")

        records, metadata = await self._fetch(
            context, location.latitude, location.longitude, start, end
        )

        if not records:
            result = self._no_data(context, metadata)
            result.location = location.to_summary()
            result.biochar = location.biochar_info()
            return result

        context.advance(SyncState.PERSISTING)
        for record in records:
            try:
                row = await asyncio.to_thread(
                    self.soil_repository.upsert,
                    location.id,
                    record.date,
                    self.data_source,
                    record.levels(),
                )
            except PersistenceError as e:
                e.persisted_rows = list(context.persisted)
                raise
            context.persisted.append(self._to_reading(row, location))

        result = self._complete(context, location, context.persisted, "provider")
        result.metadata = metadata
        result.persisted_count = len(context.persisted)
        return result

    async def _run_coordinates(self, context: _SyncContext) -> SyncResult:
        """Provider-only query for a raw point: no cache, nothing persisted."""
        request = context.request
        start, end = self._validate(request, request.latitude, request.longitude)

        records, metadata = await self._fetch(
            context, request.latitude, request.longitude, start, end
        )
        if not records:
            result = self._no_data(context, metadata)
            result.location = {
                "latitude": request.latitude,
                "longitude": request.longitude,
            }
            return result

        readings = [
            {**record.model_dump(), "data_source": self.data_source}
            for record in records
        ]
        context.advance(SyncState.AGGREGATING)
        stats = summarize(readings)
        context.advance(SyncState.DONE)
        return SyncResult(
            success=True,
            data=readings,
            stats=stats,
            provenance="provider",
            location={"latitude": request.latitude, "longitude": request.longitude},
            metadata=metadata,
        )

    def _validate(
        self, request: SyncRequest, latitude: float, longitude: float
    ) -> tuple[date, date]:
        query = SoilTemperatureQuery(
            latitude=latitude,
            longitude=longitude,
            start_date=request.start_date,
            end_date=request.end_date,
            force_refresh=request.force_refresh,
        )
        valid, errors = SoilTemperatureValidationService.validate_query(
            query,
            historical_start_date=self.historical_start_date,
            publication_delay_months=self.publication_delay_months,
        )
        if not valid:
            raise InvalidQueryError(errors)
        return (
            date.fromisoformat(str(request.start_date)),
            date.fromisoformat(str(request.end_date)),
        )

    async def _fetch(
        self,
        context: _SyncContext,
        latitude: float,
        longitude: float,
        start: date,
        end: date,
    ) -> tuple[list[SoilTemperatureData], dict[str, Any]]:
        context.advance(SyncState.FETCHING)
        session = await self.session_manager.get_session()
        records = await self.soil_client.get_soil_temperature(
            session, latitude, longitude, start, end
        )
        metadata = self.soil_client.build_metadata(
            latitude, longitude, start, end, len(records)
        )
        return records, metadata

    def _no_data(self, context: _SyncContext, metadata: dict[str, Any]) -> SyncResult:
        context.advance(SyncState.DONE)
        logger.bind(location_id=context.request.location_id).info(
            "Provider returned no rows for range"
        )
        return SyncResult(
            success=True,
            provenance="provider",
            message=NO_DATA_MESSAGE.format(months=self.publication_delay_months),
            metadata=metadata,
        )

    async def _read_cache(
        self, location: Location, start: date, end: date
    ) -> list[dict[str, Any]] | None:
        """Cached readings when fresh enough, otherwise None."""
        cached_dates = await asyncio.to_thread(
            self.soil_repository.cached_dates,
            location.id,
            start,
            end,
            self.data_source,
        )
        decision = self.freshness_policy.evaluate(start, end, cached_dates)
        if not decision.is_fresh:
            logger.bind(
                location_id=location.id,
                reason=decision.reason,
                missing=len(decision.missing_dates),
            ).info("Cache MISS: refetching from Earth Engine")
            return None

        rows = await asyncio.to_thread(
            self.soil_repository.find_by_location_and_range,
            location.id,
            start,
            end,
            self.data_source,
        )
        logger.bind(location_id=location.id, rows=len(rows)).info("Cache HIT")
        return [self._to_reading(row, location) for row in rows]

    def _complete(
        self,
        context: _SyncContext,
        location: Location,
        readings: list[dict[str, Any]],
        provenance: Literal["cache", "provider"],
    ) -> SyncResult:
        context.advance(SyncState.AGGREGATING)
        stats = summarize(readings)
        periods = summarize_biochar_periods(readings, location.biochar_start_date)
        context.advance(SyncState.DONE)
        return SyncResult(
            success=True,
            data=readings,
            stats=stats,
            provenance=provenance,
            location=location.to_summary(),
            biochar=location.biochar_info(),
            biochar_periods=periods,
        )

    @staticmethod
    def _to_reading(row: SoilTemperature, location: Location) -> dict[str, Any]:
        reading = row.to_dict()
        reading["is_post_biochar"] = is_post_biochar(
            row.measurement_date, location.biochar_start_date
        )
        return reading

    @staticmethod
    def _failure(context: _SyncContext, error: SoilTemperatureError) -> SyncResult:
        failed_during = context.state
        context.advance(SyncState.FAILED)
        persisted = (
            error.persisted_rows
            if isinstance(error, PersistenceError)
            else context.persisted
        )
        return SyncResult(
            success=False,
            state=SyncState.FAILED,
            data=list(persisted),
            error=error.message,
            error_code=error.code,
            errors=getattr(error, "errors", []),
            persisted_count=len(persisted),
            message=f"Failed during {failed_during}",
        )
