"""
Create locations and soil_temperatures tables.

Revision ID: 001_soil_temperatures
Revises:
Create Date: 2025-11-20

1. locations: monitoring sites (owner, coordinates, biochar application)
2. soil_temperatures: ERA5-Land readings per depth level (°C)
3. Unique (location_id, measurement_date, data_source): natural key
   used by INSERT ... ON CONFLICT DO UPDATE
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = "001_soil_temperatures"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", sa.String(36), primary_key=True, comment="Location UUID"),
        sa.Column("owner_id", sa.String(36), nullable=False, comment="Owning user id"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column(
            "biochar_start_date",
            sa.Date(),
            nullable=True,
            comment="Biochar application start date",
        ),
        sa.Column("biochar_quantity", sa.Float(), nullable=True),
        sa.Column("biochar_unit", sa.String(20), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_locations_owner_id", "locations", ["owner_id"])
    op.create_index(
        "idx_location_owner_active", "locations", ["owner_id", "is_active"]
    )

    op.create_table(
        "soil_temperatures",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "location_id",
            sa.String(36),
            sa.ForeignKey("locations.id"),
            nullable=False,
        ),
        sa.Column("measurement_date", sa.Date(), nullable=False),
        sa.Column(
            "data_source",
            sa.String(50),
            nullable=False,
            server_default="ERA5-Land",
        ),
        sa.Column("temp_level_1", sa.Float(), nullable=True, comment="0-7 cm (°C)"),
        sa.Column("temp_level_2", sa.Float(), nullable=True, comment="7-28 cm (°C)"),
        sa.Column(
            "temp_level_3", sa.Float(), nullable=True, comment="28-100 cm (°C)"
        ),
        sa.Column(
            "temp_level_4", sa.Float(), nullable=True, comment="100-289 cm (°C)"
        ),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            "location_id",
            "measurement_date",
            "data_source",
            name="uq_soil_temperature_location_date_source",
        ),
    )
    op.create_index(
        "idx_soil_temperature_location_date",
        "soil_temperatures",
        ["location_id", "measurement_date"],
    )


def downgrade() -> None:
    op.drop_index(
        "idx_soil_temperature_location_date", table_name="soil_temperatures"
    )
    op.drop_table("soil_temperatures")
    op.drop_index("idx_location_owner_active", table_name="locations")
    op.drop_index("ix_locations_owner_id", table_name="locations")
    op.drop_table("locations")
