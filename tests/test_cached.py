import random
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from tzinterval import CachedZoneIntervalMap, FixedZoneIntervalMap, cached
from tzinterval.instants import to_instant


def _utc(*args) -> int:
    return to_instant(datetime(*args))


def _random_instants(count: int, seed: int = 1234) -> list[int]:
    rng = random.Random(seed)
    low, high = _utc(1900, 1, 1), _utc(2100, 1, 1)
    return [rng.randrange(low, high) for _ in range(count)]


def test_cached_map_is_transparent(los_angeles):
    zone_map = los_angeles.zone_map
    cached_map = CachedZoneIntervalMap(zone_map)
    for instant in _random_instants(2000):
        assert cached_map.interval_at(instant) == zone_map.interval_at(instant)


def test_clustered_queries_hit_the_cache(los_angeles):
    cached_map = CachedZoneIntervalMap(los_angeles.zone_map, slots=2)
    first = cached_map.interval_at(_utc(2025, 7, 1))
    assert cached_map.interval_at(_utc(2025, 7, 2)) is first
    assert cached_map.cached_intervals == (first,)


def test_most_recently_used_first(los_angeles):
    cached_map = CachedZoneIntervalMap(los_angeles.zone_map, slots=2)
    summer = cached_map.interval_at(_utc(2025, 7, 1))
    winter = cached_map.interval_at(_utc(2025, 12, 1))
    assert cached_map.cached_intervals == (winter, summer)
    cached_map.interval_at(_utc(2025, 8, 1))
    assert cached_map.cached_intervals == (summer, winter)
    # A third interval evicts the least recently used one
    spring = cached_map.interval_at(_utc(2025, 1, 1))
    assert cached_map.cached_intervals == (spring, summer)
    cached_map.clear()
    assert cached_map.cached_intervals == ()


def test_cached_local_mapping_matches(los_angeles):
    cached_map = CachedZoneIntervalMap(los_angeles.zone_map)
    for local in (datetime(2025, 3, 9, 2, 30), datetime(2025, 11, 2, 1, 30), datetime(2025, 7, 1)):
        assert cached_map.map_local(local) == los_angeles.zone_map.map_local(local)


def test_cached_helper_skips_fixed_and_cached_maps(los_angeles):
    fixed = FixedZoneIntervalMap.utc()
    assert cached(fixed) is fixed
    wrapped = cached(los_angeles.zone_map)
    assert isinstance(wrapped, CachedZoneIntervalMap)
    assert cached(wrapped) is wrapped
    assert wrapped == CachedZoneIntervalMap(los_angeles.zone_map, slots=8)
    assert not wrapped.is_fixed
    assert wrapped.min_offset_secs == los_angeles.zone_map.min_offset_secs


def test_needs_a_slot(los_angeles):
    with pytest.raises(ValueError):
        CachedZoneIntervalMap(los_angeles.zone_map, slots=0)


def test_concurrent_queries(berlin):
    zone_map = berlin.zone_map
    cached_map = CachedZoneIntervalMap(zone_map, slots=3)
    instants = _random_instants(500, seed=99)
    expected = [zone_map.interval_at(instant) for instant in instants]

    def run(offset: int) -> list:
        order = instants[offset:] + instants[:offset]
        results = {instant: cached_map.interval_at(instant) for instant in order}
        return [results[instant] for instant in instants]

    with ThreadPoolExecutor(max_workers=8) as executor:
        for results in executor.map(run, range(0, 400, 50)):
            assert results == expected
