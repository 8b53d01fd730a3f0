"""
Idempotent access to persisted soil-temperature readings.

Identity is the natural key (location_id, measurement_date, data_source).
Writes use the database's native upsert (INSERT ... ON CONFLICT DO UPDATE)
on PostgreSQL and SQLite, so concurrent writers converge to one row per
key without application locks. Other dialects fall back to a
select-then-write inside a transaction scoped to the single key.

Each upsert commits on its own: a failure mid-batch leaves earlier rows
in place.
"""

from datetime import date, datetime
from typing import Any, Mapping

from loguru import logger
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from soiltemp.core.exceptions import PersistenceError
from soiltemp.database.connection import utc_now
from soiltemp.database.models.soil_temperature import (
    LEVEL_COLUMNS,
    SoilTemperature,
)

_NATIVE_UPSERT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _normalize_levels(levels: Mapping[str, Any]) -> dict[str, float | None]:
    """
    Map level values onto the four level columns.

    Accepts either column names (temp_level_1) or extractor field names
    (temperature_level_1). Missing levels become None.
    """
    normalized = {}
    for index, column in enumerate(LEVEL_COLUMNS, start=1):
        value = levels.get(column, levels.get(f"temperature_level_{index}"))
        normalized[column] = None if value is None else float(value)
    return normalized


class SoilTemperatureRepository:
    """RecordStore over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_location_and_range(
        self,
        location_id: str,
        start_date: date | str,
        end_date: date | str,
        data_source: str | None = None,
    ) -> list[SoilTemperature]:
        """Readings in [start_date, end_date], ascending by date."""
        stmt = (
            select(SoilTemperature)
            .where(SoilTemperature.location_id == location_id)
            .where(SoilTemperature.measurement_date >= _as_date(start_date))
            .where(SoilTemperature.measurement_date <= _as_date(end_date))
            .order_by(
                SoilTemperature.measurement_date.asc(),
                SoilTemperature.data_source.asc(),
            )
        )
        if data_source is not None:
            stmt = stmt.where(SoilTemperature.data_source == data_source)

        with self.session_factory() as session:
            rows = list(session.scalars(stmt))

        logger.bind(location_id=location_id, count=len(rows)).debug(
            "Soil temperature rows loaded"
        )
        return rows

    def cached_dates(
        self,
        location_id: str,
        start_date: date | str,
        end_date: date | str,
        data_source: str | None = None,
    ) -> set[date]:
        """Distinct dates already stored for the location within the range."""
        stmt = (
            select(SoilTemperature.measurement_date)
            .where(SoilTemperature.location_id == location_id)
            .where(SoilTemperature.measurement_date >= _as_date(start_date))
            .where(SoilTemperature.measurement_date <= _as_date(end_date))
            .distinct()
        )
        if data_source is not None:
            stmt = stmt.where(SoilTemperature.data_source == data_source)

        with self.session_factory() as session:
            return set(session.scalars(stmt))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(
        self,
        location_id: str,
        measurement_date: date | str,
        data_source: str,
        levels: Mapping[str, Any],
    ) -> SoilTemperature:
        """
        Insert or update one reading by natural key.

        Only the four level fields (and updated_at) change on conflict;
        key fields and created_at are left as first written.

        Raises:
            PersistenceError: The write failed (original message kept)
        """
        key = {
            "location_id": location_id,
            "measurement_date": _as_date(measurement_date),
            "data_source": data_source,
        }
        values = _normalize_levels(levels)

        try:
            with self.session_factory() as session:
                dialect = session.get_bind().dialect.name
                if dialect in _NATIVE_UPSERT:
                    with session.begin():
                        self._native_upsert(session, dialect, key, values)
                else:
                    self._upsert_with_retry(session, key, values)
                row = session.scalars(self._key_query(key)).one()
        except SQLAlchemyError as e:
            logger.bind(**{k: str(v) for k, v in key.items()}).error(
                f"Soil temperature upsert failed: {e}"
            )
            raise PersistenceError(
                f"Failed to upsert reading {key['measurement_date']} "
                f"for location {location_id}: {e}"
            ) from e

        return row

    @staticmethod
    def _key_query(key: dict[str, Any]):
        return select(SoilTemperature).where(
            SoilTemperature.location_id == key["location_id"],
            SoilTemperature.measurement_date == key["measurement_date"],
            SoilTemperature.data_source == key["data_source"],
        )

    @staticmethod
    def _native_upsert(
        session: Session,
        dialect: str,
        key: dict[str, Any],
        values: dict[str, float | None],
    ) -> None:
        insert = _NATIVE_UPSERT[dialect]
        now = utc_now()
        stmt = insert(SoilTemperature).values(**key, **values, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["location_id", "measurement_date", "data_source"],
            set_={**values, "updated_at": now},
        )
        session.execute(stmt)

    def _upsert_with_retry(
        self,
        session: Session,
        key: dict[str, Any],
        values: dict[str, float | None],
    ) -> None:
        """
        Select-then-write, retried once as an update.

        FOR UPDATE locks nothing when the row does not exist yet, so two
        first writers can both insert; the loser sees IntegrityError and
        the row is there on retry.
        """
        try:
            with session.begin():
                self._transactional_upsert(session, key, values)
        except IntegrityError:
            logger.bind(**{k: str(v) for k, v in key.items()}).debug(
                "Concurrent first insert, retrying as update"
            )
            with session.begin():
                self._transactional_upsert(session, key, values)

    def _transactional_upsert(
        self,
        session: Session,
        key: dict[str, Any],
        values: dict[str, float | None],
    ) -> None:
        existing = session.scalars(
            self._key_query(key).with_for_update()
        ).one_or_none()
        if existing is None:
            session.add(SoilTemperature(**key, **values))
        else:
            for column, value in values.items():
                setattr(existing, column, value)
