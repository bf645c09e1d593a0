"""Tests for day-count conventions and timing helpers."""

import datetime as dt
import logging

import numpy as np

from fdm_rollback.enums import DayCountConvention
from fdm_rollback.utils import calculate_year_fraction, log_timing


class TestYearFraction:
    def test_act_365f_one_year(self):
        start = dt.date(2025, 1, 1)
        end = dt.date(2026, 1, 1)
        assert np.isclose(calculate_year_fraction(start, end, DayCountConvention.ACT_365F), 1.0)

    def test_act_365f_leap_year(self):
        """2024 has 366 actual days."""
        start = dt.date(2024, 1, 1)
        end = dt.date(2025, 1, 1)
        assert np.isclose(
            calculate_year_fraction(start, end, DayCountConvention.ACT_365F), 366.0 / 365.0
        )

    def test_act_360(self):
        start = dt.date(2025, 1, 1)
        end = dt.date(2025, 7, 1)
        assert np.isclose(calculate_year_fraction(start, end, DayCountConvention.ACT_360), 181.0 / 360.0)

    def test_thirty_360_us_month_end(self):
        start = dt.date(2025, 1, 31)
        end = dt.date(2025, 3, 31)
        assert np.isclose(
            calculate_year_fraction(start, end, DayCountConvention.THIRTY_360_US), 60.0 / 360.0
        )

    def test_negative_when_reversed(self):
        start = dt.date(2025, 1, 2)
        end = dt.date(2025, 1, 1)
        assert calculate_year_fraction(start, end) < 0.0


class TestLogTiming:
    def test_logs_when_enabled(self, caplog):
        logger = logging.getLogger("fdm_rollback.timing_test")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with log_timing(logger, "block", True):
                pass
        assert "Timing block" in caplog.text

    def test_silent_when_disabled(self, caplog):
        logger = logging.getLogger("fdm_rollback.timing_test")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with log_timing(logger, "block", False):
                pass
        assert caplog.text == ""
