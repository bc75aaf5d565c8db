import logging
import os
from typing import Iterable, Mapping, Protocol

from .cached import DEFAULT_CACHE_SLOTS, cached
from .compiler import RecurrenceCompiler
from .errors import UnknownZoneError
from .rules import RuleDescriptor, ZoneDefinition
from .stream import ZoneDataStream
from .zone_map import FixedZoneIntervalMap, ZoneIntervalMap

logger = logging.getLogger(__name__)

UTC_ID = "UTC"

DATA_ENV_VAR = "TZINTERVAL_DATA"


class ZoneSource(Protocol):
    """Where a registry gets its zones from."""

    @property
    def version(self) -> str: ...

    def ids(self) -> Iterable[str]: ...

    def canonical_id(self, zone_id: str) -> str | None: ...

    def load(self, canonical_id: str) -> ZoneIntervalMap: ...

    def map_platform_id(self, platform_id: str) -> str | None: ...


class StreamZoneSource:
    """Zones decoded from a zone data stream."""

    def __init__(self, stream: ZoneDataStream) -> None:
        self._stream = stream

    @classmethod
    def from_path(cls, path: str) -> "StreamZoneSource":
        return cls(ZoneDataStream.from_path(path))

    @property
    def version(self) -> str:
        return self._stream.version

    def ids(self) -> Iterable[str]:
        return self._stream.ids

    def canonical_id(self, zone_id: str) -> str | None:
        return self._stream.canonical_id(zone_id)

    def load(self, canonical_id: str) -> ZoneIntervalMap:
        return self._stream.zones[canonical_id]

    def map_platform_id(self, platform_id: str) -> str | None:
        return self._stream.map_platform_id(platform_id)


class DefinitionZoneSource:
    """Zones compiled from rule definitions the first time they are asked for."""

    def __init__(
        self,
        definitions: Iterable[ZoneDefinition],
        rule_sets: Mapping[str, Iterable[RuleDescriptor]],
        version: str = "",
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._definitions = {definition.id: definition for definition in definitions}
        self._compiler = RecurrenceCompiler(rule_sets)
        self._version = version
        self._aliases = dict(aliases or {})

    @property
    def version(self) -> str:
        return self._version

    def ids(self) -> Iterable[str]:
        return sorted([*self._definitions, *self._aliases])

    def canonical_id(self, zone_id: str) -> str | None:
        seen = set()
        while zone_id not in self._definitions:
            if zone_id in seen or zone_id not in self._aliases:
                return None
            seen.add(zone_id)
            zone_id = self._aliases[zone_id]
        return zone_id

    def load(self, canonical_id: str) -> ZoneIntervalMap:
        return self._compiler.compile(self._definitions[canonical_id]).zone_map

    def map_platform_id(self, platform_id: str) -> str | None:
        return None


class ZoneRegistry:
    """
    Looks zones up by id, caching one wrapped interval map per canonical id.
    Concurrent lookups of the same zone may both load it; the first result
    stored is the one every caller gets.
    """

    def __init__(self, source: ZoneSource, cache_slots: int = DEFAULT_CACHE_SLOTS) -> None:
        self._source = source
        self._cache_slots = cache_slots
        self._zones: dict[str, ZoneIntervalMap] = {}
        self._utc = FixedZoneIntervalMap.utc()

    @classmethod
    def from_path(cls, path: str, cache_slots: int = DEFAULT_CACHE_SLOTS) -> "ZoneRegistry":
        return cls(StreamZoneSource.from_path(path), cache_slots)

    @classmethod
    def from_environment(cls, cache_slots: int = DEFAULT_CACHE_SLOTS) -> "ZoneRegistry":
        """Load the zone data file named by the TZINTERVAL_DATA variable."""
        path = os.environ.get(DATA_ENV_VAR)
        if not path:
            raise FileNotFoundError(
                f"No zone data configured: set {DATA_ENV_VAR} to a zone data file"
            )
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Zone data file {path!r} not found")
        logger.debug("Loading zone data from %s", path)
        return cls.from_path(path, cache_slots)

    @property
    def version(self) -> str:
        return self._source.version

    @property
    def ids(self) -> list[str]:
        ids = set(self._source.ids())
        ids.add(UTC_ID)
        return sorted(ids)

    def for_id(self, zone_id: str) -> ZoneIntervalMap:
        zone_map = self._zones.get(zone_id)
        if zone_map is not None:
            return zone_map

        canonical = self._source.canonical_id(zone_id)
        if canonical is None:
            if zone_id != UTC_ID:
                raise UnknownZoneError(zone_id)
            zone_map = self._utc
        else:
            zone_map = self._zones.get(canonical)
            if zone_map is None:
                zone_map = self._zones.setdefault(
                    canonical, cached(self._source.load(canonical), self._cache_slots)
                )
        return self._zones.setdefault(zone_id, zone_map)

    def get(
        self, zone_id: str, default: ZoneIntervalMap | None = None
    ) -> ZoneIntervalMap | None:
        try:
            return self.for_id(zone_id)
        except UnknownZoneError:
            return default

    def map_platform_id(self, platform_id: str) -> str | None:
        return self._source.map_platform_id(platform_id)

    def __contains__(self, zone_id: str) -> bool:
        return zone_id == UTC_ID or self._source.canonical_id(zone_id) is not None
