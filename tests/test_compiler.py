from datetime import datetime

import pytest

from tzinterval import (
    BEGINNING_OF_TIME,
    END_OF_TIME,
    CompositeZoneIntervalMap,
    FixedZoneIntervalMap,
    PrecomputedZoneIntervalMap,
    RecurrenceCompiler,
    ZoneCompilationError,
    ZoneDefinition,
    ZoneEra,
    parse_rules,
)
from tzinterval.instants import to_instant

HOUR = 3600


def _utc(*args) -> int:
    return to_instant(datetime(*args))


@pytest.mark.parametrize(
    "instant, name, offset",
    [
        (_utc(1918, 1, 1), "PST", -8 * HOUR),
        (_utc(1918, 6, 1), "PDT", -7 * HOUR),
        (_utc(1950, 6, 1), "PST", -8 * HOUR),
        (_utc(1970, 7, 1), "PDT", -7 * HOUR),
        # No rule gave savings in 1974/75
        (_utc(1974, 7, 1), "PST", -8 * HOUR),
        (_utc(2006, 4, 2, 9, 59, 59), "PST", -8 * HOUR),
        (_utc(2006, 4, 2, 10), "PDT", -7 * HOUR),
        (_utc(2006, 10, 29, 8, 59, 59), "PDT", -7 * HOUR),
        (_utc(2006, 10, 29, 9), "PST", -8 * HOUR),
        (_utc(2025, 3, 9, 9, 59, 59), "PST", -8 * HOUR),
        (_utc(2025, 3, 9, 10), "PDT", -7 * HOUR),
        (_utc(2025, 11, 2, 8, 59, 59), "PDT", -7 * HOUR),
        (_utc(2025, 11, 2, 9), "PST", -8 * HOUR),
        (_utc(2400, 7, 1), "PDT", -7 * HOUR),
    ],
)
def test_los_angeles(los_angeles, instant, name, offset):
    interval = los_angeles.zone_map.interval_at(instant)
    assert interval.name == name
    assert interval.wall_offset_secs == offset
    assert interval.standard_offset_secs == -8 * HOUR


def test_los_angeles_has_a_tail(los_angeles):
    assert isinstance(los_angeles.zone_map, PrecomputedZoneIntervalMap)
    assert los_angeles.tail is not None
    assert los_angeles.standard_offset_secs == -8 * HOUR
    # The explicit history stops shortly after the last rule change
    assert los_angeles.transitions[-1].instant < _utc(2010, 1, 1)


def test_tail_starts_where_explicit_transitions_end(los_angeles):
    zone_map = los_angeles.zone_map
    last = zone_map.periods[-1]
    following = zone_map.interval_at(last.end)
    assert following.start == last.end
    assert (following.wall_offset_secs, following.name) != (last.wall_offset_secs, last.name)


@pytest.mark.parametrize(
    "instant, name, offset",
    [
        (_utc(1975, 7, 1), "CET", HOUR),
        (_utc(1990, 7, 1), "CEST", 2 * HOUR),
        (_utc(1990, 9, 30, 0, 59, 59), "CEST", 2 * HOUR),
        (_utc(1990, 9, 30, 1), "CET", HOUR),
        (_utc(2025, 3, 30, 0, 59, 59), "CET", HOUR),
        (_utc(2025, 3, 30, 1), "CEST", 2 * HOUR),
        (_utc(2025, 10, 26, 1), "CET", HOUR),
    ],
)
def test_berlin(berlin, instant, name, offset):
    interval = berlin.zone_map.interval_at(instant)
    assert (interval.name, interval.wall_offset_secs) == (name, offset)


def test_transitions_strictly_increase(los_angeles, berlin):
    for zone in (los_angeles, berlin):
        instants = [transition.instant for transition in zone.transitions]
        assert instants[0] == BEGINNING_OF_TIME
        assert all(a < b for a, b in zip(instants, instants[1:]))


def test_every_transition_changes_something(los_angeles):
    intervals = los_angeles.zone_map.intervals_between(_utc(1900, 1, 1), _utc(2100, 1, 1))
    for previous, current in zip(intervals, intervals[1:]):
        assert previous.end == current.start
        assert (previous.wall_offset_secs, previous.name) != (
            current.wall_offset_secs,
            current.name,
        )


def test_no_rules_collapses_to_fixed(tokyo):
    assert isinstance(tokyo.zone_map, FixedZoneIntervalMap)
    assert tokyo.zone_map.is_fixed
    assert tokyo.transitions == []
    assert tokyo.standard_offset_secs == 9 * HOUR
    assert tokyo.zone_map.interval_at(_utc(2025, 1, 1)).name == "JST"


def test_fixed_savings_era():
    compiler = RecurrenceCompiler({})
    zone = compiler.compile(ZoneDefinition.simple("Etc/Summer", HOUR, None, "XST", HOUR))
    interval = zone.zone_map.interval_at(0)
    assert interval.wall_offset_secs == 2 * HOUR
    assert interval.savings_secs == HOUR


def test_finite_rules_only():
    rules = parse_rules(
        """
Rule Old 1990 1992 - Apr 1 2:00 1:00 D
Rule Old 1990 1992 - Oct 1 2:00 0 S
"""
    )
    zone = RecurrenceCompiler(rules).compile(
        ZoneDefinition.simple("Test/Old", -5 * HOUR, "Old", "E%sT")
    )
    assert zone.tail is None
    assert zone.zone_map.interval_at(_utc(1991, 7, 1)).name == "EDT"
    assert zone.zone_map.interval_at(_utc(2025, 7, 1)).name == "EST"
    assert zone.zone_map.periods[-1].end == END_OF_TIME


def test_later_rule_wins_on_identical_instants():
    rules = parse_rules(
        """
Rule Tie 2000 max - Apr 1 2:00 1:00 A
Rule Tie 2000 max - Apr 1 2:00 0:30 B
Rule Tie 2000 max - Oct 1 2:00 0 -
"""
    )
    zone = RecurrenceCompiler(rules).compile(
        ZoneDefinition.simple("Test/Tie", 0, "Tie", "X%sT")
    )
    for year in (2000, 2001, 2030):
        interval = zone.zone_map.interval_at(_utc(year, 7, 1))
        assert (interval.name, interval.wall_offset_secs) == ("XBT", 1800)


def test_multiple_eras(us_compiler):
    zone = us_compiler.compile(
        ZoneDefinition(
            "Test/Shifted",
            (
                ZoneEra(-5 * HOUR, "EST", None, until=datetime(1990, 1, 1)),
                ZoneEra(-6 * HOUR, "C%sT", "US"),
            ),
        )
    )
    zone_map = zone.zone_map
    assert zone_map.interval_at(_utc(1989, 7, 1)).name == "EST"
    assert zone_map.interval_at(_utc(1990, 1, 1, 4, 59, 59)).name == "EST"
    assert zone_map.interval_at(_utc(1990, 1, 1, 5)).name == "CST"
    assert zone_map.interval_at(_utc(1990, 7, 1)).name == "CDT"
    assert zone_map.interval_at(_utc(1990, 7, 1)).wall_offset_secs == -5 * HOUR


def test_unknown_rule_set():
    compiler = RecurrenceCompiler({})
    with pytest.raises(ZoneCompilationError) as exc_info:
        compiler.compile(ZoneDefinition.simple("Test/Missing", 0, "Nope", "X%sT"))
    assert exc_info.value.zone_id == "Test/Missing"
    assert exc_info.value.rule_set == "Nope"
    assert isinstance(exc_info.value, ValueError)


def test_bad_rule_reports_its_line():
    rules = parse_rules(
        """Rule Bad 2000 max - Mar lastSun 2:00 1:00 S
Rule Bad 2000 max - Oct Sun>=40 2:00 0 -
"""
    )
    compiler = RecurrenceCompiler(rules)
    with pytest.raises(ZoneCompilationError) as exc_info:
        compiler.compile(ZoneDefinition.simple("Test/Bad", 0, "Bad", "X%sT"))
    assert exc_info.value.rule_set == "Bad"
    assert exc_info.value.line == 2
    assert "line 2" in str(exc_info.value)


def test_compile_all(us_compiler, caplog):
    definitions = [
        ZoneDefinition.simple("America/Los_Angeles", -8 * HOUR, "US", "P%sT"),
        ZoneDefinition.simple("Asia/Tokyo", 9 * HOUR, None, "JST"),
    ]
    with caplog.at_level("INFO", logger="tzinterval.compiler"):
        zones = us_compiler.compile_all(definitions)
    assert [zone.id for zone in zones] == ["America/Los_Angeles", "Asia/Tokyo"]
    assert "Compiled America/Los_Angeles" in caplog.text


def test_compile_composite(us_compiler):
    zone = us_compiler.compile_composite(
        "Test/Switch",
        [
            (None, ZoneDefinition.simple("Test/Before", -5 * HOUR, None, "EST")),
            (
                datetime(2000, 1, 1),
                ZoneDefinition.simple("Test/After", -8 * HOUR, "US", "P%sT"),
            ),
        ],
    )
    zone_map = zone.zone_map
    assert isinstance(zone_map, CompositeZoneIntervalMap)
    before = zone_map.interval_at(_utc(1999, 12, 31, 23))
    assert before.name == "EST"
    assert before.end == _utc(2000, 1, 1)
    after = zone_map.interval_at(_utc(2000, 1, 1))
    assert after.name == "PST"
    assert after.start == _utc(2000, 1, 1)
    assert zone_map.interval_at(_utc(2000, 7, 1)).name == "PDT"


def test_compile_composite_rejects_unordered_parts(us_compiler):
    definition = ZoneDefinition.simple("Test/Fixed", 0, None, "UTC")
    with pytest.raises(ZoneCompilationError):
        us_compiler.compile_composite(
            "Test/Broken",
            [(None, definition), (datetime(2000, 1, 1), definition), (datetime(1990, 1, 1), definition)],
        )
