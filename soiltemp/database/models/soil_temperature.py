"""
Persisted soil-temperature readings.

One row per (location_id, measurement_date, data_source). Writes go
through SoilTemperatureRepository.upsert, never plain inserts.

Depth levels (ERA5-Land):
- temp_level_1: 0-7 cm
- temp_level_2: 7-28 cm
- temp_level_3: 28-100 cm
- temp_level_4: 100-289 cm

A row with all four levels NULL means the provider answered for that
date without a value.
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from soiltemp.database.connection import Base, utc_now

LEVEL_COLUMNS = ("temp_level_1", "temp_level_2", "temp_level_3", "temp_level_4")


class SoilTemperature(Base):
    """Daily (or monthly aggregate) soil temperature per depth level, °C."""

    __tablename__ = "soil_temperatures"
    __table_args__ = (
        UniqueConstraint(
            "location_id",
            "measurement_date",
            "data_source",
            name="uq_soil_temperature_location_date_source",
        ),
        Index("idx_soil_temperature_location_date", "location_id", "measurement_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(
        String(36),
        ForeignKey("locations.id"),
        nullable=False,
        comment="Owning location",
    )
    measurement_date = Column(Date, nullable=False, comment="Reading date (UTC)")
    data_source = Column(
        String(50),
        nullable=False,
        default="ERA5-Land",
        comment="Provider/dataset tag",
    )

    temp_level_1 = Column(Float, nullable=True, comment="0-7 cm (°C)")
    temp_level_2 = Column(Float, nullable=True, comment="7-28 cm (°C)")
    temp_level_3 = Column(Float, nullable=True, comment="28-100 cm (°C)")
    temp_level_4 = Column(Float, nullable=True, comment="100-289 cm (°C)")

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=True, onupdate=utc_now)

    location = relationship("Location", back_populates="soil_temperatures")

    def __repr__(self):
        return (
            f"<SoilTemperature(location={self.location_id}, "
            f"date={self.measurement_date}, source={self.data_source}, "
            f"l1={self.temp_level_1})>"
        )

    def levels(self) -> dict[str, float | None]:
        return {name: getattr(self, name) for name in LEVEL_COLUMNS}

    def to_dict(self):
        """Row as a plain dict (API payloads, exports)."""
        return {
            "id": self.id,
            "location_id": self.location_id,
            "date": self.measurement_date.isoformat(),
            "data_source": self.data_source,
            "temperature_level_1": self.temp_level_1,
            "temperature_level_2": self.temp_level_2,
            "temperature_level_3": self.temp_level_3,
            "temperature_level_4": self.temp_level_4,
            "created_at": (
                self.created_at.isoformat() if self.created_at else None
            ),
        }
