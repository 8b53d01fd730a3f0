"""
Command-line entry point for one soil temperature sync.

Usage:
    python -m soiltemp.main <location_id> <start_date> <end_date> \
        [--owner-id ID] [--force-refresh] [--export out.csv]
    python -m soiltemp.main <start_date> <end_date> \
        --latitude LAT --longitude LON
"""

import argparse
import asyncio
import json
import sys
from datetime import date

from loguru import logger

from config.logging_config import setup_logging
from config.settings.app_config import get_settings
from soiltemp.api.services.soil_temperature_factory import create_sync_service
from soiltemp.core.data_processing.soil_temperature_stats import export_readings_csv
from soiltemp.core.sync.soil_temperature_sync import SyncRequest, SyncResult
from soiltemp.database.connection import init_db


async def run_sync(
    request: SyncRequest,
    owner_id: str | None = None,
    export_path: str | None = None,
) -> SyncResult:
    """Sync one location and optionally export the rows to CSV."""
    service = create_sync_service()
    result = await service.sync(request, owner_id=owner_id)

    if export_path and result.success and result.data:
        biochar_start = (result.biochar or {}).get("start_date")
        export_readings_csv(
            result.data,
            export_path,
            biochar_start_date=(
                date.fromisoformat(biochar_start) if biochar_start else None
            ),
        )
    return result


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Soil temperature sync (ERA5-Land)")
    parser.add_argument("location_id", nargs="?", default=None)
    parser.add_argument("start_date", help="YYYY-MM-DD")
    parser.add_argument("end_date", help="YYYY-MM-DD")
    parser.add_argument("--latitude", type=float, default=None)
    parser.add_argument("--longitude", type=float, default=None)
    parser.add_argument("--owner-id", default=None)
    parser.add_argument("--force-refresh", action="store_true")
    parser.add_argument("--export", default=None, help="CSV output path")
    args = parser.parse_args(argv)
    has_point = args.latitude is not None and args.longitude is not None
    if args.location_id is None and not has_point:
        parser.error("give a location_id or both --latitude and --longitude")
    return args


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        json_logs=settings.json_logs,
    )
    args = parse_args(argv)
    init_db()

    request = SyncRequest(
        location_id=args.location_id,
        latitude=args.latitude,
        longitude=args.longitude,
        start_date=args.start_date,
        end_date=args.end_date,
        force_refresh=args.force_refresh,
    )
    result = asyncio.run(run_sync(request, args.owner_id, args.export))
    print(json.dumps(result.model_dump(mode="json"), indent=2))

    if not result.success:
        logger.error(f"Sync failed [{result.error_code}]: {result.error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
