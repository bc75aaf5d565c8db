from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .instants import (
    BEGINNING_OF_TIME,
    END_OF_TIME,
    format_instant,
    format_offset,
    instant_to_datetime,
    validate_offset,
)


class TransitionMode(Enum):
    """
    Clock reference used to interpret a rule's time of day.
    """

    WALL = 0
    STANDARD = 1
    UTC = 2

    @classmethod
    def from_suffix(cls, suffix: str) -> "TransitionMode":
        match suffix.lower():
            case "s":
                return cls.STANDARD
            case "u" | "g" | "z":
                return cls.UTC
            case "w" | "":
                return cls.WALL
            case _:
                raise ValueError(f"Invalid transition mode suffix: {suffix!r}")

    def offset_secs(self, standard_offset_secs: int, savings_secs: int) -> int:
        """Offset between local time in this mode and UTC."""
        match self:
            case TransitionMode.WALL:
                return standard_offset_secs + savings_secs
            case TransitionMode.STANDARD:
                return standard_offset_secs
            case _:
                return 0


@dataclass(frozen=True)
class ZoneInterval:
    """
    A maximal span of constant offset: [start, end) on the instant axis.
    """

    name: str
    start: int
    end: int
    wall_offset_secs: int
    standard_offset_secs: int

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(
                f"Zone interval must start before it ends: {self.start} >= {self.end}"
            )
        validate_offset(self.wall_offset_secs)

    @property
    def savings_secs(self) -> int:
        return self.wall_offset_secs - self.standard_offset_secs

    @property
    def is_dst(self) -> bool:
        return self.savings_secs != 0

    @property
    def has_start(self) -> bool:
        return self.start != BEGINNING_OF_TIME

    @property
    def has_end(self) -> bool:
        return self.end != END_OF_TIME

    @property
    def local_start(self) -> int:
        if not self.has_start:
            return BEGINNING_OF_TIME
        return self.start + self.wall_offset_secs

    @property
    def local_end(self) -> int:
        if not self.has_end:
            return END_OF_TIME
        return self.end + self.wall_offset_secs

    @property
    def start_utc(self) -> datetime | None:
        return instant_to_datetime(self.start) if self.has_start else None

    @property
    def end_utc(self) -> datetime | None:
        return instant_to_datetime(self.end) if self.has_end else None

    def contains(self, instant: int) -> bool:
        return self.start <= instant < self.end

    def contains_local(self, local: int) -> bool:
        return self.local_start <= local < self.local_end

    def with_bounds(self, start: int, end: int) -> "ZoneInterval":
        return ZoneInterval(
            self.name, start, end, self.wall_offset_secs, self.standard_offset_secs
        )

    def __str__(self) -> str:
        return (
            f"{self.name}: [{format_instant(self.start)}, {format_instant(self.end)}) "
            f"{format_offset(self.wall_offset_secs)} "
            f"({format_offset(self.savings_secs)})"
        )


@dataclass(frozen=True)
class ZoneTransition:
    """
    A point at which a zone's name or offsets change, as produced by the
    recurrence compiler.
    """

    instant: int
    name: str
    standard_offset_secs: int
    savings_secs: int

    @property
    def wall_offset_secs(self) -> int:
        return self.standard_offset_secs + self.savings_secs

    def is_transition_from(self, other: "ZoneTransition | None") -> bool:
        if other is None:
            return True
        return self.instant > other.instant and (
            self.wall_offset_secs != other.wall_offset_secs or self.name != other.name
        )
