"""
Statistics and tabular export for soil temperature series.

- summarize(): avg/min/max per depth level (pure)
- summarize_biochar_periods(): the same stats before and after the
  biochar application date
- readings_to_dataframe() / export_readings_csv(): pandas export
"""

from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Any

import pandas as pd
from loguru import logger
from pydantic import BaseModel

LEVEL_FIELDS = (
    "temperature_level_1",  # 0-7 cm
    "temperature_level_2",  # 7-28 cm
    "temperature_level_3",  # 28-100 cm
    "temperature_level_4",  # 100-289 cm
)


class LevelStats(BaseModel):
    """Stats for one depth level. count == 0 means no data, not 0 °C."""

    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0


class AggregatedStats(BaseModel):
    level_1: LevelStats
    level_2: LevelStats
    level_3: LevelStats
    level_4: LevelStats


def _as_mapping(reading: Any) -> Mapping[str, Any]:
    if isinstance(reading, BaseModel):
        return reading.model_dump()
    return reading


def calculate_level_stats(values: list[float]) -> LevelStats:
    """avg (2 decimals), min and max; zeros when there are no values."""
    if not values:
        return LevelStats()
    return LevelStats(
        avg=round(sum(values) / len(values), 2),
        min=min(values),
        max=max(values),
        count=len(values),
    )


def summarize(readings: Iterable[Any]) -> AggregatedStats:
    """
    Aggregate each depth level independently.

    Args:
        readings: SoilTemperatureData models or dicts with
            temperature_level_1..4 keys (None = no value)

    Returns:
        AggregatedStats
    """
    values: dict[str, list[float]] = {field: [] for field in LEVEL_FIELDS}
    for reading in readings:
        mapping = _as_mapping(reading)
        for field in LEVEL_FIELDS:
            value = mapping.get(field)
            if value is not None:
                values[field].append(float(value))

    return AggregatedStats(
        **{
            f"level_{index}": calculate_level_stats(values[field])
            for index, field in enumerate(LEVEL_FIELDS, start=1)
        }
    )


def is_post_biochar(reading_date: date | str, biochar_start_date: date | None) -> bool:
    """True when the reading falls on or after the biochar application."""
    if biochar_start_date is None:
        return False
    if isinstance(reading_date, str):
        reading_date = date.fromisoformat(reading_date)
    return reading_date >= biochar_start_date


def readings_to_dataframe(
    readings: Iterable[Any], biochar_start_date: date | None = None
) -> pd.DataFrame:
    """
    Build a date-indexed DataFrame of the series.

    Columns: temperature_level_1..4, data_source, is_post_biochar
    """
    records = [dict(_as_mapping(reading)) for reading in readings]
    columns = [*LEVEL_FIELDS, "data_source", "is_post_biochar"]
    if not records:
        empty = pd.DataFrame(columns=columns)
        empty.index = pd.DatetimeIndex([], name="date")
        return empty

    df = pd.DataFrame.from_records(records)
    df["date"] = pd.to_datetime(df["date"])
    for field in LEVEL_FIELDS:
        if field not in df.columns:
            df[field] = None
        df[field] = pd.to_numeric(df[field], errors="coerce")
    if "data_source" not in df.columns:
        df["data_source"] = None
    df["is_post_biochar"] = [
        is_post_biochar(ts.date(), biochar_start_date) for ts in df["date"]
    ]
    return df.set_index("date").sort_index()[columns]


def summarize_biochar_periods(
    readings: Iterable[Any], biochar_start_date: date | None
) -> dict[str, Any]:
    """
    Level stats before and after the biochar application date.

    Returns:
        dict with keys biochar_start_date, pre, post (AggregatedStats as
        dicts). Without a biochar date every reading is "pre".
    """
    df = readings_to_dataframe(readings, biochar_start_date)
    periods = {}
    for label, flag in (("pre", False), ("post", True)):
        subset = df[df["is_post_biochar"] == flag][list(LEVEL_FIELDS)]
        # NaN -> None so summarize() skips missing values
        rows = subset.astype(object).where(subset.notna(), None).to_dict("records")
        periods[label] = summarize(rows).model_dump()

    return {
        "biochar_start_date": (
            biochar_start_date.isoformat() if biochar_start_date else None
        ),
        **periods,
    }


def export_readings_csv(
    readings: Iterable[Any],
    path: str | Path,
    biochar_start_date: date | None = None,
) -> Path:
    """Write the series to CSV and return the file path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = readings_to_dataframe(readings, biochar_start_date)
    df.to_csv(path, index_label="date", date_format="%Y-%m-%d", float_format="%.2f")
    logger.info(f"Soil temperature export written: {path} ({len(df)} rows)")
    return path
