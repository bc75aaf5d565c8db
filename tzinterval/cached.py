from .models import ZoneInterval
from .zone_map import ZoneIntervalMap

DEFAULT_CACHE_SLOTS = 4


class CachedZoneIntervalMap(ZoneIntervalMap):
    """
    Wraps a map with a small most-recently-used cache of the intervals it
    returned. Any instant inside a cached interval is a hit.

    The slots live in a tuple that is replaced with a single attribute store,
    so concurrent readers never block; when two writers race, one update is
    lost and the next miss simply recomputes it.
    """

    def __init__(self, zone_map: ZoneIntervalMap, slots: int = DEFAULT_CACHE_SLOTS) -> None:
        if slots < 1:
            raise ValueError(f"Cache needs at least one slot: {slots}")
        self._zone_map = zone_map
        self._slot_count = slots
        self._slots: tuple[ZoneInterval, ...] = ()

    @property
    def zone_map(self) -> ZoneIntervalMap:
        return self._zone_map

    @property
    def is_fixed(self) -> bool:
        return self._zone_map.is_fixed

    @property
    def cached_intervals(self) -> tuple[ZoneInterval, ...]:
        return self._slots

    def _interval_at(self, instant: int) -> ZoneInterval:
        slots = self._slots
        for index, interval in enumerate(slots):
            if interval.start <= instant < interval.end:
                if index:
                    self._slots = (interval,) + slots[:index] + slots[index + 1 :]
                return interval

        interval = self._zone_map._interval_at(instant)
        self._slots = (interval,) + slots[: self._slot_count - 1]
        return interval

    @property
    def min_offset_secs(self) -> int:
        return self._zone_map.min_offset_secs

    @property
    def max_offset_secs(self) -> int:
        return self._zone_map.max_offset_secs

    def clear(self) -> None:
        self._slots = ()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CachedZoneIntervalMap):
            return self._zone_map == other._zone_map
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._zone_map)

    def __repr__(self) -> str:
        return (
            f"CachedZoneIntervalMap(zone_map={self._zone_map!r}, "
            f"slots={self._slot_count!r})"
        )


def cached(zone_map: ZoneIntervalMap, slots: int = DEFAULT_CACHE_SLOTS) -> ZoneIntervalMap:
    """Wrap `zone_map` in a cache unless it is fixed or already cached."""
    if zone_map.is_fixed or isinstance(zone_map, CachedZoneIntervalMap):
        return zone_map
    return CachedZoneIntervalMap(zone_map, slots)
