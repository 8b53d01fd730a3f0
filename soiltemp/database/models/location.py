"""
Monitoring site registered by an operator.

Rows are created and deactivated by location management; the
soil-temperature engine only reads them.
"""

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Index, String
from sqlalchemy.orm import relationship

from soiltemp.database.connection import Base, utc_now


class Location(Base):
    """
    Geographic monitoring site.

    Attributes:
        id: UUID string
        owner_id: Owning user reference
        name: Site name
        latitude: Decimal degrees (-90 to 90)
        longitude: Decimal degrees (-180 to 180)
        biochar_start_date: First biochar application; splits the series
            into pre/post periods
        biochar_quantity: Applied quantity (unit in biochar_unit)
        biochar_unit: Unit label (e.g. 't/ha')
        is_active: Inactive sites are hidden from the engine
    """

    __tablename__ = "locations"
    __table_args__ = (Index("idx_location_owner_active", "owner_id", "is_active"),)

    id = Column(String(36), primary_key=True, comment="Location UUID")
    owner_id = Column(
        String(36), nullable=False, index=True, comment="Owning user id"
    )
    name = Column(String(200), nullable=False, comment="Site name")
    latitude = Column(Float, nullable=False, comment="Latitude in degrees")
    longitude = Column(Float, nullable=False, comment="Longitude in degrees")

    biochar_start_date = Column(
        Date, nullable=True, comment="Biochar application start date"
    )
    biochar_quantity = Column(Float, nullable=True)
    biochar_unit = Column(String(20), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    soil_temperatures = relationship(
        "SoilTemperature", back_populates="location", lazy="select"
    )

    def __repr__(self):
        return (
            f"<Location(id={self.id}, name={self.name}, "
            f"lat={self.latitude}, lon={self.longitude})>"
        )

    def to_summary(self) -> dict:
        """Compact representation returned alongside sync results."""
        return {
            "id": self.id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    def biochar_info(self) -> dict:
        return {
            "start_date": (
                self.biochar_start_date.isoformat()
                if self.biochar_start_date
                else None
            ),
            "quantity": self.biochar_quantity,
            "unit": self.biochar_unit,
        }
