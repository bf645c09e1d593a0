"""Helper functions shared across the rollback engine."""

from __future__ import annotations

from contextlib import contextmanager
import datetime as dt
from collections.abc import Iterator
import time

from .enums import DayCountConvention
from .exceptions import ValidationError

__all__ = [
    "log_timing",
    "calculate_year_fraction",
]

SECONDS_IN_DAY = 86400


@contextmanager
def log_timing(logger, label: str, enabled: bool) -> Iterator[None]:
    """Log timing for a code block when enabled is True."""
    if not enabled:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("Timing %s: %.6fs", label, elapsed)


def _day_count_30_360_us(start_date: dt.date, end_date: dt.date) -> float:
    """30/360 (US) day-count fraction between two dates."""
    y1, m1, d1 = start_date.year, start_date.month, start_date.day
    y2, m2, d2 = end_date.year, end_date.month, end_date.day

    if d1 == 31:
        d1 = 30
    if d2 == 31 and d1 in (30, 31):
        d2 = 30

    return (360 * (y2 - y1) + 30 * (m2 - m1) + (d2 - d1)) / 360.0


def calculate_year_fraction(
    start_date: dt.date,
    end_date: dt.date,
    day_count_convention: DayCountConvention = DayCountConvention.ACT_365F,
) -> float:
    """Calculate year fraction between two dates.

    Used to turn exercise and dividend dates into rollback times measured
    from the valuation (reference) date.

    Parameters
    ==========
    start_date: date or datetime
        reference date
    end_date: date or datetime
        event date
    day_count_convention: DayCountConvention, default DayCountConvention.ACT_365F
        Day-count basis. Supported:
        - DayCountConvention.ACT_365F
        - DayCountConvention.ACT_360
        - DayCountConvention.ACT_365_25
        - DayCountConvention.THIRTY_360_US

    Returns
    =======
    year_fraction: float
        year fraction between start_date and end_date (negative if end_date
        is before start_date)

    Examples
    ========
    >>> import datetime as dt
    >>> calculate_year_fraction(dt.date(2025, 1, 1), dt.date(2025, 1, 2))  # doctest: +SKIP
    0.00273972...
    """
    if day_count_convention is DayCountConvention.THIRTY_360_US:
        return _day_count_30_360_us(start_date, end_date)
    if day_count_convention is DayCountConvention.ACT_360:
        denom = 360.0
    elif day_count_convention is DayCountConvention.ACT_365_25:
        denom = 365.25
    elif day_count_convention is DayCountConvention.ACT_365F:
        denom = 365.0
    else:
        raise ValidationError(f"Unsupported day_count_convention: {day_count_convention}")

    delta_days = (end_date - start_date).total_seconds() / SECONDS_IN_DAY
    return delta_days / denom
