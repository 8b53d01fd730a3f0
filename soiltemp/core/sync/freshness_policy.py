"""
Cache freshness decision for soil temperature ranges.

Cached rows are reused when the share of missing dates in the requested
range is strictly below the threshold (default 10%). Partial data inside
that slack is served as-is; this avoids refetching a whole range for a
handful of provider gaps.

Granularity:
- "day": every calendar day in [start, end] is expected
- "month": one reading per first-of-month date inside the range is
  expected, matching monthly aggregate datasets. A range holding no
  first-of-month date expects nothing and is always refetched.
"""

from collections.abc import Iterable
from datetime import date, timedelta

from loguru import logger
from pydantic import BaseModel, Field

GRANULARITIES = ("day", "month")


class FreshnessDecision(BaseModel):
    """Outcome of a freshness check."""

    is_fresh: bool
    reason: str
    expected_count: int = 0
    missing_dates: list[date] = Field(default_factory=list)
    missing_ratio: float = 1.0


def _next_month_start(day: date) -> date:
    return (day.replace(day=1) + timedelta(days=32)).replace(day=1)


def expected_dates(start: date, end: date, granularity: str = "day") -> list[date]:
    """Dates a complete cache would hold for [start, end] (inclusive)."""
    if granularity == "day":
        return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]
    if granularity == "month":
        months = []
        # month starts before start are never cached
        current = start if start.day == 1 else _next_month_start(start)
        while current <= end:
            months.append(current)
            current = _next_month_start(current)
        return months
    raise ValueError(f"Unknown granularity '{granularity}', use {GRANULARITIES}")


class FreshnessPolicy:
    """Decides cache hit versus provider refetch."""

    def __init__(self, threshold: float = 0.10, granularity: str = "day"):
        if not 0 < threshold <= 1:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        if granularity not in GRANULARITIES:
            raise ValueError(
                f"Unknown granularity '{granularity}', use {GRANULARITIES}"
            )
        self.threshold = threshold
        self.granularity = granularity

    def evaluate(
        self,
        start: date,
        end: date,
        cached_dates: Iterable[date],
        force_refresh: bool = False,
    ) -> FreshnessDecision:
        """
        Args:
            start: First requested date
            end: Last requested date (inclusive)
            cached_dates: Distinct dates already stored for the location
            force_refresh: Always refetch when True

        Returns:
            FreshnessDecision
        """
        if force_refresh:
            return FreshnessDecision(is_fresh=False, reason="force_refresh")

        cached = set(cached_dates)
        if not cached:
            return FreshnessDecision(is_fresh=False, reason="empty_cache")

        expected = expected_dates(start, end, self.granularity)
        if not expected:
            return FreshnessDecision(is_fresh=False, reason="no_expected_dates")

        missing = [day for day in expected if day not in cached]
        ratio = len(missing) / len(expected)
        is_fresh = ratio < self.threshold

        logger.bind(
            start=start,
            end=end,
            expected=len(expected),
            missing=len(missing),
            ratio=round(ratio, 4),
        ).debug(f"Freshness check: {'fresh' if is_fresh else 'stale'}")

        return FreshnessDecision(
            is_fresh=is_fresh,
            reason="fresh" if is_fresh else "too_many_missing",
            expected_count=len(expected),
            missing_dates=missing,
            missing_ratio=ratio,
        )
