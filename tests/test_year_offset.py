from datetime import datetime

import pytest

from tzinterval.instants import local_to_datetime, to_local
from tzinterval.models import TransitionMode
from tzinterval.year_offset import ZoneYearOffset


def _offset(month, day_of_month, day_of_week=0, advance=False, time_of_day_secs=0, mode=TransitionMode.WALL):
    return ZoneYearOffset(mode, month, day_of_month, day_of_week, advance, time_of_day_secs)


@pytest.mark.parametrize(
    "year_offset, year, expected",
    [
        # Sun>=8 in March: second Sunday
        (_offset(3, 8, 7, True, 7200), 2025, datetime(2025, 3, 9, 2, 0, 0)),
        (_offset(3, 8, 7, True, 7200), 2026, datetime(2026, 3, 8, 2, 0, 0)),
        # Sun>=1 in November: first Sunday
        (_offset(11, 1, 7, True, 7200), 2025, datetime(2025, 11, 2, 2, 0, 0)),
        (_offset(11, 1, 7, True, 7200), 2026, datetime(2026, 11, 1, 2, 0, 0)),
        # lastSun
        (_offset(10, -1, 7), 2025, datetime(2025, 10, 26, 0, 0, 0)),
        # lastMon
        (_offset(5, -1, 1), 2025, datetime(2025, 5, 26, 0, 0, 0)),
        # Fri<=1 when the 1st is a Friday, and when it is not
        (_offset(4, 1, 5, False), 2022, datetime(2022, 4, 1, 0, 0, 0)),
        (_offset(4, 1, 5, False), 2023, datetime(2023, 3, 31, 0, 0, 0)),
        # Last day of February
        (_offset(2, -1), 2024, datetime(2024, 2, 29, 0, 0, 0)),
        (_offset(2, -1), 2025, datetime(2025, 2, 28, 0, 0, 0)),
        # 24:00 rolls into the next day
        (_offset(3, -1, 7, False, 24 * 3600), 2025, datetime(2025, 3, 31, 0, 0, 0)),
        # Hour/min/sec honored
        (_offset(7, 1, 2, True, 6 * 3600 + 30 * 60 + 15), 2025, datetime(2025, 7, 1, 6, 30, 15)),
    ],
)
def test_local_seconds(year_offset: ZoneYearOffset, year, expected):
    assert local_to_datetime(year_offset.local_seconds(year)) == expected


@pytest.mark.parametrize("year, expected", [(2024, True), (2023, False), (2100, False), (2000, True)])
def test_feb_29_only_exists_in_leap_years(year, expected):
    feb_29 = _offset(2, 29)
    assert (feb_29.local_seconds(year) is not None) == expected


@pytest.mark.parametrize("year", [0, 10000, -5])
def test_years_outside_supported_range(year):
    assert _offset(1, 1).local_seconds(year) is None


@pytest.mark.parametrize(
    "mode, expected",
    [
        # 02:00 wall in a -08:00 zone already saving an hour
        (TransitionMode.WALL, datetime(2025, 3, 9, 9, 0, 0)),
        (TransitionMode.STANDARD, datetime(2025, 3, 9, 10, 0, 0)),
        (TransitionMode.UTC, datetime(2025, 3, 9, 2, 0, 0)),
    ],
)
def test_instant_by_mode(mode, expected):
    year_offset = _offset(3, 8, 7, True, 7200, mode)
    instant = year_offset.instant(2025, -8 * 3600, 3600)
    assert instant == to_local(expected)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"month": 13},
        {"month": 0},
        {"day_of_month": 0},
        {"day_of_month": 32},
        {"day_of_month": -32},
        {"day_of_week": 8},
        {"time_of_day_secs": 7 * 86400},
    ],
)
def test_invalid_year_offsets(kwargs):
    values = {
        "mode": TransitionMode.WALL,
        "month": 3,
        "day_of_month": 8,
        "day_of_week": 7,
        "advance_day_of_week": True,
        "time_of_day_secs": 7200,
    }
    values.update(kwargs)
    with pytest.raises(ValueError):
        ZoneYearOffset(**values)


def test_str():
    assert str(_offset(3, 8, 7, True, 7200)) == "Mar Sun>=8 2:00"
    assert str(_offset(10, -1, 7, False, 3600, TransitionMode.UTC)) == "Oct lastSun 1:00u"
