from datetime import datetime

import pytest

from tzinterval import (
    CompiledZone,
    RecurrenceCompiler,
    ZoneDefinition,
    ZoneEra,
    parse_rules,
)

US_RULES = """
# Rule NAME FROM TO   -  IN  ON      AT   SAVE LETTER/S
Rule  US    1918 1919 -  Mar lastSun 2:00 1:00 D
Rule  US    1918 1919 -  Oct lastSun 2:00 0    S
Rule  US    1967 2006 -  Oct lastSun 2:00 0    S
Rule  US    1967 1973 -  Apr lastSun 2:00 1:00 D
Rule  US    1976 1986 -  Apr lastSun 2:00 1:00 D
Rule  US    1987 2006 -  Apr Sun>=1  2:00 1:00 D
Rule  US    2007 max  -  Mar Sun>=8  2:00 1:00 D
Rule  US    2007 max  -  Nov Sun>=1  2:00 0    S
"""

EU_RULES = """
Rule  EU    1981 max  -  Mar lastSun 1:00u 1:00 S
Rule  EU    1981 1995 -  Sep lastSun 1:00u 0    -
Rule  EU    1996 max  -  Oct lastSun 1:00u 0    -
"""

HOUR = 3600


@pytest.fixture
def us_compiler() -> RecurrenceCompiler:
    return RecurrenceCompiler(parse_rules(US_RULES + EU_RULES))


@pytest.fixture
def los_angeles(us_compiler) -> CompiledZone:
    return us_compiler.compile(
        ZoneDefinition.simple("America/Los_Angeles", -8 * HOUR, "US", "P%sT")
    )


@pytest.fixture
def berlin(us_compiler) -> CompiledZone:
    return us_compiler.compile(
        ZoneDefinition(
            "Europe/Berlin",
            (
                ZoneEra(HOUR, "CET", None, until=datetime(1980, 1, 1)),
                ZoneEra(HOUR, "CE%sT", "EU"),
            ),
        )
    )


@pytest.fixture
def tokyo(us_compiler) -> CompiledZone:
    return us_compiler.compile(ZoneDefinition.simple("Asia/Tokyo", 9 * HOUR, None, "JST"))


@pytest.fixture
def us_rule_sets():
    return parse_rules(US_RULES)
