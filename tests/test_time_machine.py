"""
Tests for the engine clock.
"""

from datetime import datetime

import pytest

from mlm_engine import timeMachine


class TestTimeMachine:
    """Virtual time and earning windows."""

    def test_real_time_by_default(self):
        assert not timeMachine.isVirtual
        assert timeMachine.now.tzinfo is not None

    def test_windows_follow_virtual_time(self):
        timeMachine.setTime(datetime(2024, 3, 14, 15, 30))

        assert timeMachine.isVirtual
        assert timeMachine.startOfMonth == datetime(2024, 3, 1)
        assert timeMachine.startOfWeek == datetime(2024, 3, 10)

    def test_sunday_starts_its_own_week(self):
        timeMachine.setTime(datetime(2024, 3, 10, 8, 0))

        assert timeMachine.startOfWeek == datetime(2024, 3, 10)

    @pytest.mark.parametrize("current, months, expected", [
        (datetime(2024, 8, 20), 5, datetime(2024, 3, 1)),
        (datetime(2024, 2, 5), 5, datetime(2023, 9, 1)),
        (datetime(2024, 1, 31), 1, datetime(2023, 12, 1)),
        (datetime(2024, 6, 1), 0, datetime(2024, 6, 1)),
    ])
    def test_start_of_months_ago(self, current, months, expected):
        timeMachine.setTime(current)

        assert timeMachine.startOfMonthsAgo(months) == expected

    def test_advance_requires_virtual_time(self):
        with pytest.raises(ValueError):
            timeMachine.advanceTime(days=1)

        timeMachine.setTime(datetime(2024, 1, 31))
        timeMachine.advanceTime(days=1, hours=2)

        assert timeMachine.now == datetime(2024, 2, 1, 2, 0)
