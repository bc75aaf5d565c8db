from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .errors import AmbiguousTimeError, SkippedTimeError
from .instants import instant_to_datetime, local_to_datetime
from .models import ZoneInterval

if TYPE_CHECKING:
    from .zone_map import ZoneIntervalMap


class LocalMappingKind(Enum):
    SKIPPED = 0
    UNIQUE = 1
    AMBIGUOUS = 2


@dataclass(frozen=True)
class ZoneLocalMapping:
    """
    How a wall-clock time maps onto a zone. For a unique mapping both
    intervals are the same; when ambiguous they are the earlier and later
    matches; when skipped they are the interval ending at the gap and the one
    starting after it.
    """

    local: int
    kind: LocalMappingKind
    early_interval: ZoneInterval
    late_interval: ZoneInterval

    @property
    def count(self) -> int:
        return self.kind.value

    @property
    def local_datetime(self) -> datetime | None:
        return local_to_datetime(self.local)

    @property
    def earlier_instant(self) -> int | None:
        if self.kind is LocalMappingKind.SKIPPED:
            return None
        return self.local - self.early_interval.wall_offset_secs

    @property
    def later_instant(self) -> int | None:
        if self.kind is LocalMappingKind.SKIPPED:
            return None
        return self.local - self.late_interval.wall_offset_secs

    @property
    def gap_secs(self) -> int:
        """Width of the gap the local time fell into, 0 unless skipped."""
        if self.kind is not LocalMappingKind.SKIPPED:
            return 0
        return self.late_interval.wall_offset_secs - self.early_interval.wall_offset_secs


@dataclass(frozen=True)
class LocalTimeRejection:
    kind: LocalMappingKind
    local: int
    early_interval: ZoneInterval
    late_interval: ZoneInterval

    def __str__(self) -> str:
        local = self.local_datetime
        when = local.isoformat() if local is not None else str(self.local)
        state = "ambiguous" if self.kind is LocalMappingKind.AMBIGUOUS else "skipped"
        return (
            f"Local time {when} is {state} "
            f"(between {self.early_interval} and {self.late_interval})"
        )

    @property
    def local_datetime(self) -> datetime | None:
        return local_to_datetime(self.local)


@dataclass(frozen=True)
class LocalResolution:
    """
    Outcome of resolving a local time: an instant with the offset it was
    resolved at, or a rejection. Rejections are ordinary values.
    """

    mapping: ZoneLocalMapping
    instant: int | None
    offset_secs: int | None
    rejection: LocalTimeRejection | None = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

    def unwrap(self) -> int:
        """The resolved instant, raising if the local time was rejected."""
        if self.rejection is None:
            return self.instant
        if self.rejection.kind is LocalMappingKind.AMBIGUOUS:
            raise AmbiguousTimeError(self.rejection)
        raise SkippedTimeError(self.rejection)

    def to_datetime(self) -> datetime | None:
        """Aware datetime at the resolved offset, or None if rejected."""
        if self.rejection is not None:
            return None
        utc = instant_to_datetime(self.instant)
        if utc is None:
            return None
        return utc.astimezone(timezone(timedelta(seconds=self.offset_secs)))


Resolver = Callable[[ZoneLocalMapping], LocalResolution]


def _at(mapping: ZoneLocalMapping, instant: int, interval: ZoneInterval) -> LocalResolution:
    return LocalResolution(mapping, instant, interval.wall_offset_secs)


def _reject(mapping: ZoneLocalMapping) -> LocalResolution:
    return LocalResolution(
        mapping,
        None,
        None,
        LocalTimeRejection(
            mapping.kind, mapping.local, mapping.early_interval, mapping.late_interval
        ),
    )


# Ambiguous local times


def return_earlier(mapping: ZoneLocalMapping) -> LocalResolution:
    return _at(mapping, mapping.earlier_instant, mapping.early_interval)


def return_later(mapping: ZoneLocalMapping) -> LocalResolution:
    return _at(mapping, mapping.later_instant, mapping.late_interval)


def reject_ambiguous(mapping: ZoneLocalMapping) -> LocalResolution:
    return _reject(mapping)


# Skipped local times


def shift_forward(mapping: ZoneLocalMapping) -> LocalResolution:
    """
    Push the local time forward by the width of the gap: 02:30 in a
    02:00-03:00 gap becomes 03:30 at the new offset.
    """
    instant = mapping.local + mapping.gap_secs - mapping.late_interval.wall_offset_secs
    return _at(mapping, instant, mapping.late_interval)


def shift_backward(mapping: ZoneLocalMapping) -> LocalResolution:
    """Push the local time back by the width of the gap, at the old offset."""
    instant = mapping.local - mapping.gap_secs - mapping.early_interval.wall_offset_secs
    return _at(mapping, instant, mapping.early_interval)


def return_start_of_interval_after(mapping: ZoneLocalMapping) -> LocalResolution:
    return _at(mapping, mapping.late_interval.start, mapping.late_interval)


def return_end_of_interval_before(mapping: ZoneLocalMapping) -> LocalResolution:
    return _at(mapping, mapping.early_interval.end - 1, mapping.early_interval)


def reject_skipped(mapping: ZoneLocalMapping) -> LocalResolution:
    return _reject(mapping)


@dataclass(frozen=True)
class LocalResolver:
    """A pair of policies: one for ambiguous and one for skipped local times."""

    ambiguous: Resolver = return_earlier
    skipped: Resolver = shift_forward

    def resolve(self, mapping: ZoneLocalMapping) -> LocalResolution:
        match mapping.kind:
            case LocalMappingKind.UNIQUE:
                return _at(mapping, mapping.earlier_instant, mapping.early_interval)
            case LocalMappingKind.AMBIGUOUS:
                return self.ambiguous(mapping)
            case _:
                return self.skipped(mapping)


STRICT = LocalResolver(reject_ambiguous, reject_skipped)
LENIENT = LocalResolver(return_earlier, shift_forward)


def resolve_local(
    zone_map: "ZoneIntervalMap",
    local: datetime | int,
    resolver: LocalResolver = LENIENT,
) -> LocalResolution:
    """Map a wall-clock time onto `zone_map` and reduce it to one outcome."""
    return resolver.resolve(zone_map.map_local(local))
