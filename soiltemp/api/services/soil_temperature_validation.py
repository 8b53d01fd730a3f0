"""
Validation of soil-temperature queries against ERA5-Land coverage.

Checks (in order):
1. Latitude (-90 to 90) and longitude (-180 to 180)
2. Dates parse as YYYY-MM-DD
3. start_date < end_date
4. end_date is not in the future
5. start_date >= historical floor (ERA5-Land: 1950-01-01)
6. end_date <= today - publication delay (ERA5-Land: ~3 months)

Validation never raises for bad input: every violation is collected and
returned so the caller can report them together.
"""

import calendar
from datetime import date, datetime, timezone

from loguru import logger
from pydantic import BaseModel

from config.settings.app_config import get_settings


class SoilTemperatureQuery(BaseModel):
    """Spatio-temporal query, built per request and validated once."""

    latitude: float
    longitude: float
    start_date: date | str
    end_date: date | str
    force_refresh: bool = False


def utc_today() -> date:
    """Current calendar date in UTC, the calendar provider dates use."""
    return datetime.now(timezone.utc).date()


def subtract_months(day: date, months: int) -> date:
    """Shift ``day`` back by calendar months, clamping to the month's end."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


class SoilTemperatureValidationService:
    """Stateless validator for SoilTemperatureQuery."""

    LAT_MIN, LAT_MAX = -90.0, 90.0
    LON_MIN, LON_MAX = -180.0, 180.0

    @staticmethod
    def _parse_date(value: date | str) -> date | None:
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def validate_coordinates(lat: float, lon: float) -> list[str]:
        """Range checks; messages name the offending field."""
        cls = SoilTemperatureValidationService
        errors: list[str] = []
        if not cls.LAT_MIN <= lat <= cls.LAT_MAX:
            errors.append(
                f"latitude {lat} out of range ({cls.LAT_MIN} to {cls.LAT_MAX})"
            )
        if not cls.LON_MIN <= lon <= cls.LON_MAX:
            errors.append(
                f"longitude {lon} out of range ({cls.LON_MIN} to {cls.LON_MAX})"
            )
        return errors

    @staticmethod
    def validate_date_range(start_date: date | str, end_date: date | str) -> list[str]:
        """Format and order checks only (no coverage, no coordinates)."""
        start = SoilTemperatureValidationService._parse_date(start_date)
        end = SoilTemperatureValidationService._parse_date(end_date)
        errors: list[str] = []
        if start is None:
            errors.append(
                f"start_date '{start_date}' is not a valid date (use YYYY-MM-DD)"
            )
        if end is None:
            errors.append(
                f"end_date '{end_date}' is not a valid date (use YYYY-MM-DD)"
            )
        if start is not None and end is not None and start >= end:
            errors.append(f"start_date {start} must be before end_date {end}")
        return errors

    @staticmethod
    def validate_query(
        query: SoilTemperatureQuery,
        today: date | None = None,
        historical_start_date: date | None = None,
        publication_delay_months: int | None = None,
    ) -> tuple[bool, list[str]]:
        """
        Validate a query against numeric and coverage constraints.

        Args:
            query: Query to validate
            today: Reference date (defaults to the UTC date)
            historical_start_date: Earliest date served by the dataset
            publication_delay_months: Provider publication delay

        Returns:
            Tuple (valid, errors)
        """
        config = get_settings().soil_temperature
        today = today or utc_today()
        floor = historical_start_date or config.historical_start_date
        delay = (
            publication_delay_months
            if publication_delay_months is not None
            else config.publication_delay_months
        )

        errors = SoilTemperatureValidationService.validate_coordinates(
            query.latitude, query.longitude
        )

        errors.extend(
            SoilTemperatureValidationService.validate_date_range(
                query.start_date, query.end_date
            )
        )
        start = SoilTemperatureValidationService._parse_date(query.start_date)
        end = SoilTemperatureValidationService._parse_date(query.end_date)

        if end is not None and end > today:
            errors.append(f"end_date {end} cannot be in the future (today is {today})")

        if start is not None and start < floor:
            errors.append(
                f"start_date {start} is before the earliest available "
                f"date ({floor})"
            )

        latest = subtract_months(today, delay)
        if end is not None and end > latest:
            errors.append(
                f"end_date {end} is inside the provider publication delay: "
                f"data is only available up to about {delay} months ago "
                f"({latest})"
            )

        if errors:
            logger.bind(
                lat=query.latitude,
                lon=query.longitude,
                start=str(query.start_date),
                end=str(query.end_date),
            ).warning(f"Soil temperature query rejected: {errors}")
            return False, errors

        logger.bind(start=start, end=end).debug("Soil temperature query validated")
        return True, []
