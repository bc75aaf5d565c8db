from dataclasses import dataclass
from datetime import date, timedelta

from .instants import MAX_YEAR, MIN_YEAR, days_in_month, local_seconds
from .models import TransitionMode

_MONTHS = ("", "Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_DAYS_OF_WEEK = ("", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

_MAX_TIME_OF_DAY_SECS = 7 * 86400


@dataclass(frozen=True)
class ZoneYearOffset:
    """
    Selects one local date/time per year: a day of a month, optionally moved
    to a weekday on/after or on/before it, plus a time of day interpreted in
    a clock reference (wall, standard or UTC).
    """

    mode: TransitionMode
    month: int
    day_of_month: int  # negative counts back from the month end, -1 = last day
    day_of_week: int  # 0 = exact day, 1=Mon..7=Sun
    advance_day_of_week: bool
    time_of_day_secs: int  # may exceed one day, e.g. 25:00

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be in [1, 12]: {self.month}")
        if self.day_of_month == 0 or not -31 <= self.day_of_month <= 31:
            raise ValueError(
                f"Day of month must be in [1, 31] or [-31, -1]: {self.day_of_month}"
            )
        if not 0 <= self.day_of_week <= 7:
            raise ValueError(f"Day of week must be in [0, 7]: {self.day_of_week}")
        if not -_MAX_TIME_OF_DAY_SECS < self.time_of_day_secs < _MAX_TIME_OF_DAY_SECS:
            raise ValueError(f"Time of day out of range: {self.time_of_day_secs}s")

    def _date(self, year: int) -> date | None:
        length = days_in_month(year, self.month)
        if self.day_of_month > 0:
            if self.day_of_month > length:
                # e.g. Feb 29 in a non-leap year
                return None
            day = date(year, self.month, self.day_of_month)
        else:
            if -self.day_of_month > length:
                return None
            day = date(year, self.month, length + self.day_of_month + 1)

        if self.day_of_week == 0:
            return day

        # date.isoweekday(): Mon=1..Sun=7, same numbering as day_of_week
        delta = self.day_of_week - day.isoweekday()
        if self.advance_day_of_week:
            delta %= 7
        else:
            delta = -((-delta) % 7)
        return day + timedelta(days=delta)

    def local_seconds(self, year: int) -> int | None:
        """
        Local timestamp (in this selector's clock reference) of the selected
        moment in `year`, or None when the year has no such date.
        """
        if not MIN_YEAR <= year <= MAX_YEAR:
            return None
        try:
            day = self._date(year)
        except OverflowError:
            # Weekday adjustment left the supported calendar range
            return None
        if day is None:
            return None
        return local_seconds(day) + self.time_of_day_secs

    def instant(self, year: int, standard_offset_secs: int, savings_secs: int) -> int | None:
        local = self.local_seconds(year)
        if local is None:
            return None
        return local - self.mode.offset_secs(standard_offset_secs, savings_secs)

    def __str__(self) -> str:
        if self.day_of_month == -1 and self.day_of_week:
            day = f"last{_DAYS_OF_WEEK[self.day_of_week]}"
        elif self.day_of_week == 0:
            day = str(self.day_of_month)
        else:
            op = ">=" if self.advance_day_of_week else "<="
            day = f"{_DAYS_OF_WEEK[self.day_of_week]}{op}{self.day_of_month}"
        sign = "-" if self.time_of_day_secs < 0 else ""
        minutes, seconds = divmod(abs(self.time_of_day_secs), 60)
        hours, minutes = divmod(minutes, 60)
        time = f"{sign}{hours}:{minutes:02d}"
        if seconds:
            time += f":{seconds:02d}"
        suffix = {TransitionMode.STANDARD: "s", TransitionMode.UTC: "u"}.get(
            self.mode, ""
        )
        return f"{_MONTHS[self.month]} {day} {time}{suffix}"
