"""
Soil temperature data processing.

- Per-level statistics (avg/min/max)
- Pre/post biochar period split
- DataFrame and CSV export

Imports are lazy so importing the package does not pull in pandas.
"""

import importlib
from typing import Any


def __getattr__(name: str) -> Any:
    """Resolve public names on first access."""
    lazy_imports = {
        "summarize": (
            "soiltemp.core.data_processing.soil_temperature_stats",
            "summarize",
        ),
        "summarize_biochar_periods": (
            "soiltemp.core.data_processing.soil_temperature_stats",
            "summarize_biochar_periods",
        ),
        "readings_to_dataframe": (
            "soiltemp.core.data_processing.soil_temperature_stats",
            "readings_to_dataframe",
        ),
        "export_readings_csv": (
            "soiltemp.core.data_processing.soil_temperature_stats",
            "export_readings_csv",
        ),
        "AggregatedStats": (
            "soiltemp.core.data_processing.soil_temperature_stats",
            "AggregatedStats",
        ),
    }

    if name in lazy_imports:
        module_name, attr_name = lazy_imports[name]
        try:
            module = importlib.import_module(module_name)
            return getattr(module, attr_name)
        except (ImportError, AttributeError) as e:
            raise ImportError(
                f"Could not import {name} from {module_name}: {e}"
            ) from e

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
