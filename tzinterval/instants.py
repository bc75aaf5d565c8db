from datetime import date, datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_LOCAL_EPOCH = datetime(1970, 1, 1)
_ONE_SECOND = timedelta(seconds=1)

SECONDS_PER_DAY = 86400

# Sentinels lie far outside anything the Gregorian helpers below can produce.
BEGINNING_OF_TIME = -(2**62)
END_OF_TIME = 2**62

MAX_OFFSET_SECS = 18 * 3600

MIN_YEAR = 1
MAX_YEAR = 9999

_EPOCH_ORDINAL = _LOCAL_EPOCH.toordinal()
_MIN_LOCAL = (date(MIN_YEAR, 1, 1).toordinal() - _EPOCH_ORDINAL) * SECONDS_PER_DAY
_MAX_LOCAL = (
    date(MAX_YEAR, 12, 31).toordinal() - _EPOCH_ORDINAL + 1
) * SECONDS_PER_DAY - 1


def to_instant(value: datetime | int) -> int:
    """
    Normalize an instant to whole seconds since the Unix epoch.
    Naive datetimes are interpreted as UTC, aware ones are converted.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - _EPOCH) // _ONE_SECOND
    return int(value)


def to_local(value: datetime | int) -> int:
    """Normalize a wall-clock date/time to whole seconds since 1970-01-01T00:00."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            raise ValueError("Local date/times must be naive datetimes.")
        return (value - _LOCAL_EPOCH) // _ONE_SECOND
    return int(value)


def instant_to_datetime(instant: int) -> datetime | None:
    """Aware UTC datetime for an instant, or None outside the datetime range."""
    if not _MIN_LOCAL <= instant <= _MAX_LOCAL:
        return None
    return _EPOCH + timedelta(seconds=instant)


def local_to_datetime(local: int) -> datetime | None:
    if not _MIN_LOCAL <= local <= _MAX_LOCAL:
        return None
    return _LOCAL_EPOCH + timedelta(seconds=local)


def validate_offset(offset_secs: int) -> int:
    if not -MAX_OFFSET_SECS < offset_secs <= MAX_OFFSET_SECS:
        raise ValueError(f"Offset must be in (-18h, +18h]: {offset_secs}s")
    return offset_secs


def year_of(local: int) -> int:
    """
    Gregorian year of a local timestamp. Values outside the supported range
    clamp to MIN_YEAR - 1 or MAX_YEAR + 1.
    """
    if local < _MIN_LOCAL:
        return MIN_YEAR - 1
    if local > _MAX_LOCAL:
        return MAX_YEAR + 1
    return date.fromordinal(_EPOCH_ORDINAL + local // SECONDS_PER_DAY).year


def local_seconds(day: date) -> int:
    """Local timestamp of midnight at the start of `day`."""
    return (day.toordinal() - _EPOCH_ORDINAL) * SECONDS_PER_DAY


def start_of_year(year: int) -> int:
    if year < MIN_YEAR:
        return BEGINNING_OF_TIME
    if year > MAX_YEAR:
        return END_OF_TIME
    return local_seconds(date(year, 1, 1))


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (date(year, month + 1, 1) - date(year, month, 1)).days


def format_instant(instant: int) -> str:
    if instant <= BEGINNING_OF_TIME:
        return "StartOfTime"
    if instant >= END_OF_TIME:
        return "EndOfTime"
    dt = instant_to_datetime(instant)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ") if dt else str(instant)


def format_offset(offset_secs: int) -> str:
    sign = "-" if offset_secs < 0 else "+"
    minutes, seconds = divmod(abs(offset_secs), 60)
    hours, minutes = divmod(minutes, 60)
    if seconds:
        return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{sign}{hours:02d}:{minutes:02d}"
