"""Read-only lookup of monitoring sites."""

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from soiltemp.database.models.location import Location


class LocationRepository:
    """Resolves a location id to an active Location, optionally per owner."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, location_id: str, owner_id: str | None = None) -> Location | None:
        """
        Fetch an active location.

        Args:
            location_id: Location UUID
            owner_id: When given, the location must belong to this owner

        Returns:
            Location, or None if missing, inactive or owned by someone else
        """
        stmt = select(Location).where(
            Location.id == location_id, Location.is_active.is_(True)
        )
        if owner_id is not None:
            stmt = stmt.where(Location.owner_id == owner_id)

        with self.session_factory() as session:
            location = session.scalars(stmt).one_or_none()

        if location is None:
            logger.bind(location_id=location_id, owner_id=owner_id).warning(
                "Location not found or not authorized"
            )
        return location
