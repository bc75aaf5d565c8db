import bisect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .instants import (
    BEGINNING_OF_TIME,
    END_OF_TIME,
    MAX_OFFSET_SECS,
    to_instant,
    to_local,
)
from .models import ZoneInterval, ZoneTransition
from .recurrence import RecurringTail
from .resolution import LocalMappingKind, ZoneLocalMapping


class ZoneIntervalMap:
    """
    Answers "which interval covers this instant" for one zone. The variants
    are a closed set: fixed, precomputed and composite maps, plus the caching
    wrapper. Every variant covers the whole instant axis, so interval_at()
    always succeeds.
    """

    is_fixed = False

    def _interval_at(self, instant: int) -> ZoneInterval:
        raise NotImplementedError

    def interval_at(self, instant: datetime | int) -> ZoneInterval:
        """
        Accepts a naive (interpreted as UTC) or aware datetime, or whole
        seconds since the Unix epoch.
        """
        return self._interval_at(to_instant(instant))

    def offset_at(self, instant: datetime | int) -> int:
        return self.interval_at(instant).wall_offset_secs

    def name_at(self, instant: datetime | int) -> str:
        return self.interval_at(instant).name

    def next_transition(self, instant: datetime | int) -> int | None:
        """First transition strictly after `instant`, if any."""
        interval = self.interval_at(instant)
        return interval.end if interval.has_end else None

    def previous_transition(self, instant: datetime | int) -> int | None:
        """Last transition at or before `instant`, if any."""
        interval = self.interval_at(instant)
        return interval.start if interval.has_start else None

    def intervals_between(
        self, start: datetime | int, end: datetime | int
    ) -> list[ZoneInterval]:
        """Every interval overlapping [start, end), in order."""
        start, end = to_instant(start), to_instant(end)
        if start >= end:
            return []
        intervals = [self._interval_at(start)]
        while intervals[-1].has_end and intervals[-1].end < end:
            intervals.append(self._interval_at(intervals[-1].end))
        return intervals

    @property
    def min_offset_secs(self) -> int:
        raise NotImplementedError

    @property
    def max_offset_secs(self) -> int:
        raise NotImplementedError

    def _intervals_near_local(self, local: int) -> list[ZoneInterval]:
        # Wall offsets lie in (-18h, +18h], so any interval that can contain
        # `local` overlaps [local - 18h, local + 18h].
        low = max(local - MAX_OFFSET_SECS, BEGINNING_OF_TIME)
        high = local + MAX_OFFSET_SECS
        intervals = [self._interval_at(low)]
        while intervals[-1].has_end and intervals[-1].end <= high:
            intervals.append(self._interval_at(intervals[-1].end))
        return intervals

    def map_local(self, local: datetime | int) -> ZoneLocalMapping:
        """
        Classify a wall-clock time as unique, ambiguous (it occurred twice)
        or skipped (it never occurred), with the intervals involved.
        """
        local = to_local(local)
        candidates = self._intervals_near_local(local)
        matches = [interval for interval in candidates if interval.contains_local(local)]
        if len(matches) == 1:
            return ZoneLocalMapping(
                local, LocalMappingKind.UNIQUE, matches[0], matches[0]
            )
        if matches:
            return ZoneLocalMapping(
                local, LocalMappingKind.AMBIGUOUS, matches[0], matches[-1]
            )
        for before, after in zip(candidates, candidates[1:]):
            if before.local_end <= local < after.local_start:
                return ZoneLocalMapping(local, LocalMappingKind.SKIPPED, before, after)
        raise ValueError(f"Local time {local} is not covered by the zone intervals")

    def interval_at_local(self, local: datetime | int) -> ZoneInterval | None:
        """
        An interval whose offset maps `local` into itself (the earlier one
        when ambiguous), or None when `local` was skipped.
        """
        mapping = self.map_local(local)
        if mapping.kind is LocalMappingKind.SKIPPED:
            return None
        return mapping.early_interval


@dataclass(frozen=True)
class FixedZoneIntervalMap(ZoneIntervalMap):
    """A single interval covering all time."""

    interval: ZoneInterval

    is_fixed = True

    def __init__(
        self, name: str, wall_offset_secs: int, standard_offset_secs: int | None = None
    ) -> None:
        if standard_offset_secs is None:
            standard_offset_secs = wall_offset_secs
        object.__setattr__(
            self,
            "interval",
            ZoneInterval(
                name, BEGINNING_OF_TIME, END_OF_TIME, wall_offset_secs, standard_offset_secs
            ),
        )

    @classmethod
    def utc(cls) -> "FixedZoneIntervalMap":
        return cls("UTC", 0)

    def _interval_at(self, instant: int) -> ZoneInterval:
        return self.interval

    @property
    def min_offset_secs(self) -> int:
        return self.interval.wall_offset_secs

    @property
    def max_offset_secs(self) -> int:
        return self.interval.wall_offset_secs

    def map_local(self, local: datetime | int) -> ZoneLocalMapping:
        return ZoneLocalMapping(
            to_local(local), LocalMappingKind.UNIQUE, self.interval, self.interval
        )


@dataclass(frozen=True)
class PrecomputedZoneIntervalMap(ZoneIntervalMap):
    """
    Explicit contiguous periods from the beginning of time, optionally
    followed by a recurring tail that is in force from the end of the last
    period onwards.
    """

    periods: tuple[ZoneInterval, ...]
    tail: RecurringTail | None = None
    _starts: list[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        periods = self.periods
        if not periods:
            raise ValueError("A precomputed map needs at least one period.")
        if periods[0].start != BEGINNING_OF_TIME:
            raise ValueError("The first period must start at the beginning of time.")
        for previous, current in zip(periods, periods[1:]):
            if previous.end != current.start:
                raise ValueError(
                    f"Periods are not contiguous: {previous} is followed by {current}"
                )
        if self.tail is None and periods[-1].has_end:
            raise ValueError("Without a tail the last period must extend to the end of time.")
        if self.tail is not None and not periods[-1].has_end:
            raise ValueError("With a tail the last period must end where the tail starts.")
        object.__setattr__(self, "_starts", [period.start for period in periods])

    @classmethod
    def from_transitions(
        cls,
        transitions: Sequence[ZoneTransition],
        tail_start: int = END_OF_TIME,
        tail: RecurringTail | None = None,
    ) -> "PrecomputedZoneIntervalMap":
        """Build periods from transitions; the first must be at the beginning of time."""
        ends = [transition.instant for transition in transitions[1:]] + [tail_start]
        periods = tuple(
            ZoneInterval(
                transition.name,
                transition.instant,
                end,
                transition.wall_offset_secs,
                transition.standard_offset_secs,
            )
            for transition, end in zip(transitions, ends)
        )
        return cls(periods, tail)

    @property
    def tail_start(self) -> int:
        return self.periods[-1].end

    def _interval_at(self, instant: int) -> ZoneInterval:
        if self.tail is not None and instant >= self.tail_start:
            return self.tail.interval_at(instant, floor=self.tail_start)
        index = bisect.bisect_right(self._starts, instant) - 1
        return self.periods[max(index, 0)]

    def _offsets(self) -> list[int]:
        offsets = [period.wall_offset_secs for period in self.periods]
        if self.tail is not None:
            offsets.extend(
                self.tail.standard_offset_secs + rule.savings_secs
                for rule in self.tail.rules
            )
        return offsets

    @property
    def min_offset_secs(self) -> int:
        return min(self._offsets())

    @property
    def max_offset_secs(self) -> int:
        return max(self._offsets())


@dataclass(frozen=True)
class CompositeZoneIntervalMap(ZoneIntervalMap):
    """
    Delegates to one of several maps depending on the instant: each part is
    in force from its boundary up to the next part's boundary. Intervals are
    clipped to those boundaries, except where the neighbouring part carries
    on with the same name and offsets.
    """

    parts: tuple[tuple[int, ZoneIntervalMap], ...]
    _boundaries: list[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.parts:
            raise ValueError("A composite map needs at least one part.")
        boundaries = [boundary for boundary, _ in self.parts]
        if boundaries[0] != BEGINNING_OF_TIME:
            raise ValueError("The first part must start at the beginning of time.")
        if any(a >= b for a, b in zip(boundaries, boundaries[1:])):
            raise ValueError("Composite part boundaries must strictly increase.")
        object.__setattr__(self, "_boundaries", boundaries)

    def _upper(self, index: int) -> int:
        if index + 1 < len(self._boundaries):
            return self._boundaries[index + 1]
        return END_OF_TIME

    def _clipped(self, index: int, instant: int) -> ZoneInterval:
        lower, upper = self._boundaries[index], self._upper(index)
        interval = self.parts[index][1].interval_at(instant)
        if interval.start >= lower and interval.end <= upper:
            return interval
        return interval.with_bounds(max(interval.start, lower), min(interval.end, upper))

    def _interval_at(self, instant: int) -> ZoneInterval:
        index = max(bisect.bisect_right(self._boundaries, instant) - 1, 0)
        interval = self._clipped(index, instant)
        # A boundary that changes nothing is not a transition
        start, end = interval.start, interval.end
        before = index
        while before > 0 and start == self._boundaries[before]:
            neighbour = self._clipped(before - 1, start - 1)
            if not _same_offsets(neighbour, interval):
                break
            start = neighbour.start
            before -= 1
        after = index
        while end != END_OF_TIME and end == self._upper(after):
            neighbour = self._clipped(after + 1, end)
            if not _same_offsets(neighbour, interval):
                break
            end = neighbour.end
            after += 1
        if (start, end) == (interval.start, interval.end):
            return interval
        return interval.with_bounds(start, end)

    @property
    def min_offset_secs(self) -> int:
        return min(zone_map.min_offset_secs for _, zone_map in self.parts)

    @property
    def max_offset_secs(self) -> int:
        return max(zone_map.max_offset_secs for _, zone_map in self.parts)


def _same_offsets(first: ZoneInterval, second: ZoneInterval) -> bool:
    return (
        first.name == second.name
        and first.wall_offset_secs == second.wall_offset_secs
        and first.standard_offset_secs == second.standard_offset_secs
    )
