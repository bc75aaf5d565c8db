import re
from dataclasses import dataclass
from datetime import datetime

from .instants import to_local, validate_offset
from .models import TransitionMode
from .recurrence import ZoneRecurrence
from .year_offset import ZoneYearOffset

_MONTH_NAMES = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)
_DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TIME_PARSER = re.compile(
    r"(?P<sign>-)?(?P<h>\d{1,3})(?::(?P<m>\d{2})(?::(?P<s>\d{2}))?)?(?P<mode>[wsugz])?",
    re.ASCII | re.IGNORECASE,
)
_OFFSET_PARSER = re.compile(
    r"(?P<sign>-)?(?P<h>\d{1,2})(?::(?P<m>\d{2})(?::(?P<s>\d{2}))?)?[sd]?",
    re.ASCII | re.IGNORECASE,
)
_DAY_PARSER = re.compile(
    r"""
    (?P<dom>\d{1,2})
    |last(?P<last>[a-z]+)
    |(?P<dow>[a-z]+)(?P<op>>=|<=)(?P<anchor>\d{1,2})
    """,
    re.ASCII | re.IGNORECASE | re.VERBOSE,
)


def _match_name(text: str, names: tuple[str, ...], kind: str) -> int:
    # TZDB allows any unambiguous prefix, e.g. "Mar", "Sept", "Su"
    lowered = text.lower()
    matches = [i for i, name in enumerate(names, 1) if lowered and name.startswith(lowered)]
    if len(matches) != 1:
        raise ValueError(f"Invalid {kind}: {text!r}")
    return matches[0]


def parse_month(text: str) -> int:
    return _match_name(text, _MONTH_NAMES, "month")


def parse_day_of_week(text: str) -> int:
    return _match_name(text, _DAY_NAMES, "day of week")


def parse_day(text: str) -> tuple[int, int, bool]:
    """
    Parse an ON field into (day_of_month, day_of_week, advance_day_of_week).
    Accepts "15", "lastSun", "Sun>=8" and "Fri<=1".
    """
    match = _DAY_PARSER.fullmatch(text)
    if match is None:
        raise ValueError(f"Invalid day selector: {text!r}")
    if match.group("dom"):
        day_of_month = int(match.group("dom"))
        if not 1 <= day_of_month <= 31:
            raise ValueError(f"Day of month must be in [1, 31]: {text!r}")
        return day_of_month, 0, False
    if match.group("last"):
        return -1, parse_day_of_week(match.group("last")), False
    anchor = int(match.group("anchor"))
    if not 1 <= anchor <= 31:
        raise ValueError(f"Day of month must be in [1, 31]: {text!r}")
    return anchor, parse_day_of_week(match.group("dow")), match.group("op") == ">="


def parse_time(text: str) -> tuple[int, TransitionMode]:
    """
    Parse an AT field such as "2:00", "2:00s", "1:00u" or "24:00" into
    (seconds, mode).
    """
    match = _TIME_PARSER.fullmatch(text)
    if match is None:
        raise ValueError(f"Invalid time: {text!r}")
    h, m, s = (int(v or 0) for v in match.group("h", "m", "s"))
    if h > 167:
        raise ValueError(f"Hour must be in [0, 167]: {text!r}")
    if not (0 <= m < 60 and 0 <= s < 60):
        raise ValueError(f"Minutes/seconds must be in [0, 59]: {text!r}")
    total = h * 3600 + m * 60 + s
    if match.group("sign"):
        total = -total
    return total, TransitionMode.from_suffix(match.group("mode") or "")


def parse_offset(text: str) -> int:
    """Parse a SAVE or STDOFF field such as "1:00", "-0:30" or "0" to seconds."""
    # A trailing s/d only marks standard/daylight time and is ignored here
    match = _OFFSET_PARSER.fullmatch(text)
    if match is None:
        raise ValueError(f"Invalid offset: {text!r}")
    h, m, s = (int(v or 0) for v in match.group("h", "m", "s"))
    if not (0 <= m < 60 and 0 <= s < 60):
        raise ValueError(f"Minutes/seconds must be in [0, 59]: {text!r}")
    total = h * 3600 + m * 60 + s
    if match.group("sign"):
        total = -total
    return validate_offset(total)


def _parse_year(text: str, default: int | None = None) -> int | None:
    lowered = text.lower()
    if lowered in ("max", "maximum"):
        return None
    if lowered in ("only", "o"):
        return default
    if lowered in ("min", "minimum"):
        return 1
    if not text.isdigit():
        raise ValueError(f"Invalid year: {text!r}")
    return int(text)


@dataclass(frozen=True)
class RuleDescriptor:
    """
    One recurring rule of a named rule set, with its selectors kept as text
    so that they are validated when the zone is compiled.
    """

    rule_set: str
    from_year: int
    to_year: int | None
    month: int
    day: str
    at: str
    savings_secs: int
    letter: str = ""
    line: int | None = None

    @classmethod
    def parse(cls, text: str, line: int | None = None) -> "RuleDescriptor":
        """
        Parse a single TZDB rule line:
        `Rule NAME FROM TO - IN ON AT SAVE LETTER/S`.
        """
        fields = text.split("#", 1)[0].split()
        if len(fields) != 10 or fields[0].lower() != "rule":
            raise ValueError(f"Invalid rule line: {text!r}")
        _, name, from_text, to_text, _, month, day, at, save, letter = fields
        from_year = _parse_year(from_text)
        if from_year is None:
            raise ValueError(f"Rule cannot start at year {from_text!r}")
        to_year = _parse_year(to_text, default=from_year)
        return cls(
            rule_set=name,
            from_year=from_year,
            to_year=to_year,
            month=parse_month(month),
            day=day,
            at=at,
            savings_secs=parse_offset(save),
            letter="" if letter == "-" else letter,
            line=line,
        )

    def year_offset(self) -> ZoneYearOffset:
        day_of_month, day_of_week, advance = parse_day(self.day)
        time_of_day, mode = parse_time(self.at)
        return ZoneYearOffset(
            mode, self.month, day_of_month, day_of_week, advance, time_of_day
        )

    def to_recurrence(self, name_format: str, standard_offset_secs: int) -> ZoneRecurrence:
        return ZoneRecurrence(
            format_name(name_format, self.letter, standard_offset_secs, self.savings_secs),
            self.savings_secs,
            self.year_offset(),
            self.from_year,
            self.to_year,
        )


def parse_rules(text: str) -> dict[str, list[RuleDescriptor]]:
    """Group every `Rule` line of `text` by rule set, keeping definition order."""
    rule_sets: dict[str, list[RuleDescriptor]] = {}
    for number, line in enumerate(text.splitlines(), 1):
        if not line.split("#", 1)[0].strip():
            continue
        rule = RuleDescriptor.parse(line, number)
        rule_sets.setdefault(rule.rule_set, []).append(rule)
    return rule_sets


def _format_numeric_offset(offset_secs: int) -> str:
    sign = "-" if offset_secs < 0 else "+"
    minutes, seconds = divmod(abs(offset_secs), 60)
    hours, minutes = divmod(minutes, 60)
    if seconds:
        return f"{sign}{hours:02d}{minutes:02d}{seconds:02d}"
    if minutes:
        return f"{sign}{hours:02d}{minutes:02d}"
    return f"{sign}{hours:02d}"


def format_name(
    name_format: str, letter: str, standard_offset_secs: int, savings_secs: int
) -> str:
    """
    Expand a zone FORMAT: "P%sT" takes the rule letter, "GMT/BST" picks the
    second name while saving, "%z" becomes the numeric wall offset.
    """
    if "/" in name_format:
        standard_name, daylight_name = name_format.split("/", 1)
        return daylight_name if savings_secs else standard_name
    if "%z" in name_format:
        return name_format.replace(
            "%z", _format_numeric_offset(standard_offset_secs + savings_secs)
        )
    return name_format.replace("%s", letter)


@dataclass(frozen=True)
class ZoneEra:
    """
    One line of a zone definition: the standard offset and the rules (by rule
    set name, or a fixed savings amount) in force until `until`.
    """

    standard_offset_secs: int
    format: str
    rules: str | None = None
    fixed_savings_secs: int = 0
    until: datetime | None = None
    until_mode: TransitionMode = TransitionMode.WALL

    def __post_init__(self) -> None:
        validate_offset(self.standard_offset_secs)

    def until_instant(self, savings_secs: int) -> int | None:
        if self.until is None:
            return None
        return to_local(self.until) - self.until_mode.offset_secs(
            self.standard_offset_secs, savings_secs
        )


@dataclass(frozen=True)
class ZoneDefinition:
    id: str
    eras: tuple[ZoneEra, ...]

    def __post_init__(self) -> None:
        if not self.eras:
            raise ValueError(f"Zone {self.id!r} has no eras.")
        if any(era.until is None for era in self.eras[:-1]):
            raise ValueError(f"Only the last era of zone {self.id!r} may be open-ended.")

    @classmethod
    def simple(
        cls,
        zone_id: str,
        standard_offset_secs: int,
        rules: str | None,
        name_format: str,
        fixed_savings_secs: int = 0,
    ) -> "ZoneDefinition":
        return cls(
            zone_id,
            (ZoneEra(standard_offset_secs, name_format, rules, fixed_savings_secs),),
        )
