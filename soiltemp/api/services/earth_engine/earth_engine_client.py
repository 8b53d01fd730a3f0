"""
Google Earth Engine session management and region extraction.

Authentication:
- Service account (GEE_SERVICE_ACCOUNT_EMAIL + GEE_PRIVATE_KEY)
- Cloud project (GEE_PROJECT_ID)

Session lifecycle:
    UNINITIALIZED -> INITIALIZING -> READY
    INITIALIZING -> FAILED -> UNINITIALIZED (a later call retries)

Concurrent callers arriving while the handshake is in flight all await the
same asyncio.Task and observe the same outcome. The earthengine-api calls
are blocking, so they run in worker threads via asyncio.to_thread.

Documentation: https://developers.google.com/earth-engine/guides/service_account
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import date, datetime, timedelta, timezone
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from config.settings.app_config import EarthEngineSettings, get_settings
from soiltemp.core.exceptions import (
    ProviderAuthError,
    ProviderConfigError,
    SoilTemperatureError,
)


class SessionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class GeoPoint(BaseModel):
    """Point geometry in WGS84."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class EarthEngineSession:
    """Handle to an authenticated Earth Engine API."""

    def __init__(self, api: Any, project_id: str, service_account_email: str):
        self.api = api
        self.project_id = project_id
        self.service_account_email = service_account_email
        self.initialized_at = datetime.now(timezone.utc)

    def __repr__(self):
        return (
            f"<EarthEngineSession(project={self.project_id}, "
            f"account={self.service_account_email})>"
        )


Authenticator = Callable[[EarthEngineSettings], Awaitable[EarthEngineSession]]


async def authenticate_service_account(
    credentials: EarthEngineSettings,
) -> EarthEngineSession:
    """
    Authenticate and initialize the earthengine-api library.

    Raises:
        ProviderAuthError: Handshake or initialization failed
    """
    import ee

    def _initialize():
        service_credentials = ee.ServiceAccountCredentials(
            credentials.service_account_email,
            key_data=credentials.private_key,
        )
        ee.Initialize(service_credentials, project=credentials.project_id)

    try:
        await asyncio.to_thread(_initialize)
    except Exception as e:
        raise ProviderAuthError(f"Earth Engine authentication failed: {e}") from e

    logger.info(
        f"Earth Engine initialized (project={credentials.project_id})"
    )
    return EarthEngineSession(
        api=ee,
        project_id=credentials.project_id,
        service_account_email=credentials.service_account_email,
    )


class EarthEngineSessionManager:
    """
    Single-flight owner of the process-wide Earth Engine session.

    Inject one instance per process into the sync service instead of
    relying on module-level state.
    """

    def __init__(
        self,
        credentials: EarthEngineSettings | None = None,
        authenticator: Authenticator | None = None,
    ):
        """
        Args:
            credentials: Service-account settings (defaults to app settings)
            authenticator: Coroutine performing the handshake (injectable
                for tests)
        """
        self.credentials = credentials or get_settings().earth_engine
        self.authenticator = authenticator or authenticate_service_account
        self._state = SessionState.UNINITIALIZED
        self._session: EarthEngineSession | None = None
        self._init_task: asyncio.Task | None = None
        self._generation = 0

    @property
    def state(self) -> SessionState:
        return self._state

    def is_configured(self) -> bool:
        """Credential presence check, no network access."""
        return self.credentials.is_configured()

    async def get_session(self) -> EarthEngineSession:
        """
        Return the ready session, initializing it on first use.

        Raises:
            ProviderConfigError: Credentials missing
            ProviderAuthError: Handshake failed (state resets for retry)
        """
        if self._state is SessionState.READY and self._session is not None:
            return self._session

        if self._init_task is None:
            self._state = SessionState.INITIALIZING
            self._init_task = asyncio.ensure_future(
                self._initialize(self._generation)
            )
        else:
            logger.debug("Earth Engine initialization in flight, joining it")

        # shield: one cancelled waiter must not cancel the shared attempt
        return await asyncio.shield(self._init_task)

    async def _initialize(self, generation: int) -> EarthEngineSession:
        try:
            if not self.is_configured():
                raise ProviderConfigError(
                    "Google Earth Engine is not configured: set "
                    "GEE_SERVICE_ACCOUNT_EMAIL, GEE_PRIVATE_KEY and "
                    "GEE_PROJECT_ID"
                )
            logger.info("Authenticating with Google Earth Engine")
            session = await asyncio.wait_for(
                self.authenticator(self.credentials),
                timeout=self.credentials.init_timeout,
            )
        except SoilTemperatureError as e:
            self._mark_failed(generation, e)
            raise
        except asyncio.CancelledError as e:
            self._mark_failed(generation, e)
            raise
        except asyncio.TimeoutError as e:
            error = ProviderAuthError(
                f"Earth Engine initialization timed out after "
                f"{self.credentials.init_timeout}s"
            )
            self._mark_failed(generation, error)
            raise error from e
        except Exception as e:
            error = ProviderAuthError(f"Earth Engine initialization failed: {e}")
            self._mark_failed(generation, error)
            raise error from e

        if generation == self._generation:
            self._session = session
            self._state = SessionState.READY
            self._init_task = None
        return session

    def _mark_failed(self, generation: int, error: BaseException) -> None:
        if generation != self._generation:
            return
        self._state = SessionState.FAILED
        logger.bind(state=self._state).error(
            f"Earth Engine session unavailable: {error!r}"
        )
        self._session = None
        self._init_task = None
        self._state = SessionState.UNINITIALIZED

    def reset(self) -> None:
        """Drop the session; the next get_session() re-authenticates."""
        self._generation += 1
        self._session = None
        self._init_task = None
        self._state = SessionState.UNINITIALIZED
        logger.info("Earth Engine session reset")

    async def health_check(self) -> dict[str, str]:
        """
        Check that the session can be initialized.

        Returns:
            dict: {"status": "ok" | "error", "message": ...}
        """
        try:
            await self.get_session()
        except SoilTemperatureError as e:
            return {"status": "error", "message": f"Connection error: {e.message}"}
        return {
            "status": "ok",
            "message": "Google Earth Engine authenticated and initialized",
        }


class EarthEngineRegionClient:
    """Tabular region extraction (ImageCollection.getRegion) for one point."""

    def __init__(self, dataset: str, crs: str = "EPSG:4326"):
        self.dataset = dataset
        self.crs = crs

    async def extract_region(
        self,
        session: EarthEngineSession,
        point: GeoPoint,
        band_names: Sequence[str],
        start_date: date,
        end_date: date,
        scale: int,
    ) -> list[list[Any]]:
        """
        Fetch the raw getRegion table (header row first).

        end_date is inclusive; Earth Engine's filterDate end is exclusive,
        so the filter runs to end_date + 1 day.
        """
        ee = session.api
        end_exclusive = end_date + timedelta(days=1)

        def _get_region():
            geometry = ee.Geometry.Point([point.longitude, point.latitude])
            collection = (
                ee.ImageCollection(self.dataset)
                .filterDate(start_date.isoformat(), end_exclusive.isoformat())
                .filterBounds(geometry)
                .select(list(band_names))
            )
            return collection.getRegion(geometry, scale, self.crs).getInfo()

        logger.bind(
            dataset=self.dataset,
            lat=point.latitude,
            lon=point.longitude,
            start=start_date.isoformat(),
            end=end_date.isoformat(),
        ).info("Earth Engine getRegion request")
        return await asyncio.to_thread(_get_region)
