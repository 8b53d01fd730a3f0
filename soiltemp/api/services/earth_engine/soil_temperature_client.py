"""
Soil temperature time series from ERA5-Land (Google Earth Engine).

Dataset: ECMWF/ERA5_LAND/MONTHLY_AGGR
Coverage: Global land, 1950-01-01 to ~3 months ago
Resolution: 0.1° x 0.1° (~11 km, scale 11132 m)

4 SOIL TEMPERATURE BANDS (Kelvin):
1. soil_temperature_level_1: 0-7 cm
2. soil_temperature_level_2: 7-28 cm
3. soil_temperature_level_3: 28-100 cm
4. soil_temperature_level_4: 100-289 cm

Data Reference:
--------------
Muñoz Sabater, J. (2019): ERA5-Land monthly averaged data from 1981 to
present. Copernicus Climate Change Service (C3S) Climate Data Store (CDS).

The getRegion table has a header row first. Columns are looked up by
name: band order is not guaranteed and any band may be missing.
"""

from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from soiltemp.api.services.earth_engine.earth_engine_client import (
    EarthEngineSession,
    GeoPoint,
)
from soiltemp.core.exceptions import ProviderQueryError, SoilTemperatureError

KELVIN_OFFSET = 273.15


def kelvin_to_celsius(kelvin: float) -> float:
    """Convert Kelvin to Celsius."""
    return kelvin - KELVIN_OFFSET


class ERA5LandConfig(BaseModel):
    """ERA5-Land soil temperature extraction configuration."""

    dataset: str = "ECMWF/ERA5_LAND/MONTHLY_AGGR"
    bands: tuple[str, str, str, str] = (
        "soil_temperature_level_1",  # 0-7 cm
        "soil_temperature_level_2",  # 7-28 cm
        "soil_temperature_level_3",  # 28-100 cm
        "soil_temperature_level_4",  # 100-289 cm
    )
    time_column: str = "time"
    scale: int = 11132
    data_source: str = "ERA5-Land"


class SoilTemperatureData(BaseModel):
    """One date of soil temperature readings (°C)."""

    date: str = Field(..., description="Date ISO 8601 (UTC)")
    temperature_level_1: float | None = Field(None, description="0-7 cm (°C)")
    temperature_level_2: float | None = Field(None, description="7-28 cm (°C)")
    temperature_level_3: float | None = Field(None, description="28-100 cm (°C)")
    temperature_level_4: float | None = Field(
        None, description="100-289 cm (°C)"
    )

    def levels(self) -> dict[str, float | None]:
        return {
            "temperature_level_1": self.temperature_level_1,
            "temperature_level_2": self.temperature_level_2,
            "temperature_level_3": self.temperature_level_3,
            "temperature_level_4": self.temperature_level_4,
        }


class RegionClient(Protocol):
    async def extract_region(
        self,
        session: Any,
        point: GeoPoint,
        band_names: Sequence[str],
        start_date: date,
        end_date: date,
        scale: int,
    ) -> list[list[Any]]: ...


class SoilTemperatureClient:
    """
    Fetches and reshapes ERA5-Land soil temperature for a point.

    NOTE: Coverage validations (historical floor, publication delay) are
    done in soil_temperature_validation.py before calling this client.
    """

    def __init__(self, region_client: RegionClient, config: ERA5LandConfig | None = None):
        """
        Args:
            region_client: Provider client exposing extract_region()
            config: Dataset/band configuration (optional)
        """
        self.region_client = region_client
        self.config = config or ERA5LandConfig()

    async def get_soil_temperature(
        self,
        session: EarthEngineSession,
        lat: float,
        lon: float,
        start_date: date,
        end_date: date,
    ) -> list[SoilTemperatureData]:
        """
        Extract the soil temperature series for a point.

        Args:
            session: Authenticated provider session
            lat: Latitude (-90 to 90)
            lon: Longitude (-180 to 180)
            start_date: First date (inclusive)
            end_date: Last date (inclusive)

        Returns:
            Readings sorted ascending by date (empty when the provider has
            no rows for the range)

        Raises:
            ProviderQueryError: Request failed or response is malformed
        """
        point = GeoPoint(latitude=lat, longitude=lon)
        logger.info(
            f"Fetching ERA5-Land soil temperature: lat={lat}, lon={lon}, "
            f"dates={start_date} to {end_date}"
        )

        try:
            rows = await self.region_client.extract_region(
                session,
                point,
                list(self.config.bands),
                start_date,
                end_date,
                self.config.scale,
            )
        except SoilTemperatureError:
            raise
        except Exception as e:
            logger.error(f"ERA5-Land region extraction failed: {e}")
            raise ProviderQueryError(
                f"ERA5-Land region extraction failed: {e}"
            ) from e

        records = self.parse_region(rows)
        logger.info(f"ERA5-Land: Parsed {len(records)} records")
        return records

    def parse_region(self, rows: Sequence[Sequence[Any]] | None) -> list[SoilTemperatureData]:
        """
        Reshape a getRegion table into typed readings.

        Args:
            rows: Header row followed by data rows

        Returns:
            List[SoilTemperatureData] sorted by date
        """
        if not rows or len(rows) < 2:
            return []

        columns = self._column_index(rows[0])
        time_index = columns.get(self.config.time_column)
        if time_index is None:
            raise ProviderQueryError(
                f"Malformed provider response: no '{self.config.time_column}' "
                f"column in header {list(rows[0])}"
            )
        # None marks a band absent from this response
        band_indexes = [columns.get(band) for band in self.config.bands]

        records = []
        for row_number, row in enumerate(rows[1:], start=1):
            if len(row) != len(rows[0]):
                raise ProviderQueryError(
                    f"Malformed provider response: row {row_number} has "
                    f"{len(row)} values for {len(rows[0])} columns"
                )
            levels = [
                self._celsius(row[index]) if index is not None else None
                for index in band_indexes
            ]
            records.append(
                SoilTemperatureData(
                    date=self._format_date(row[time_index]),
                    temperature_level_1=levels[0],
                    temperature_level_2=levels[1],
                    temperature_level_3=levels[2],
                    temperature_level_4=levels[3],
                )
            )

        # ISO dates sort chronologically as strings
        return sorted(records, key=lambda record: record.date)

    @staticmethod
    def _column_index(header: Sequence[Any]) -> dict[str, int]:
        columns: dict[str, int] = {}
        for index, name in enumerate(header):
            if name in columns:
                raise ProviderQueryError(
                    f"Malformed provider response: duplicate column '{name}'"
                )
            columns[name] = index
        return columns

    @staticmethod
    def _celsius(value: Any) -> float | None:
        if value is None:
            return None
        try:
            return kelvin_to_celsius(float(value))
        except (TypeError, ValueError) as e:
            raise ProviderQueryError(
                f"Malformed provider response: non-numeric band value {value!r}"
            ) from e

    @staticmethod
    def _format_date(timestamp_ms: Any) -> str:
        """
        Convert epoch milliseconds (UTC) → ISO 8601 date (YYYY-MM-DD).

        Time of day is dropped: the dataset is already aggregated.
        """
        try:
            moment = datetime.fromtimestamp(float(timestamp_ms) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            raise ProviderQueryError(
                f"Malformed provider response: invalid timestamp {timestamp_ms!r}"
            ) from e
        return moment.date().isoformat()

    def build_metadata(
        self,
        lat: float,
        lon: float,
        start_date: date,
        end_date: date,
        record_count: int,
    ) -> dict[str, Any]:
        """Response metadata attached to provider results."""
        return {
            "location": {"latitude": lat, "longitude": lon},
            "date_range": {
                "start": start_date.isoformat(),
                "end": end_date.isoformat(),
            },
            "record_count": record_count,
            "dataset": self.config.dataset,
        }
