import io
import logging
import os
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import IO, Callable, Iterable

from .cached import CachedZoneIntervalMap
from .compiler import CompiledZone
from .errors import ZoneStreamError
from .instants import BEGINNING_OF_TIME, END_OF_TIME
from .models import TransitionMode, ZoneInterval
from .recurrence import RecurringTail, ZoneRecurrence
from .stream_io import StringCollector, ZoneStreamReader, ZoneStreamWriter
from .year_offset import ZoneYearOffset
from .zone_map import (
    CompositeZoneIntervalMap,
    FixedZoneIntervalMap,
    PrecomputedZoneIntervalMap,
    ZoneIntervalMap,
)

logger = logging.getLogger(__name__)

MAGIC = b"TZIM"
FORMAT_VERSION = 1

_HEADER_FORMAT = ">4sB"

_KIND_FIXED = 0
_KIND_PRECOMPUTED = 1
_KIND_COMPOSITE = 2


class FieldId(IntEnum):
    STRING_POOL = 0
    TIME_ZONE = 1
    VERSION = 2
    ID_MAP = 3
    PLATFORM_MAPPING_VERSION = 4
    PLATFORM_ID_MAP = 5


def _write_interval_data(writer: ZoneStreamWriter, interval: ZoneInterval) -> None:
    writer.write_string(interval.name)
    writer.write_offset(interval.wall_offset_secs)
    writer.write_offset(interval.standard_offset_secs)


def _write_recurrence(writer: ZoneStreamWriter, rule: ZoneRecurrence) -> None:
    writer.write_string(rule.name)
    writer.write_offset(rule.savings_secs)
    year_offset = rule.year_offset
    writer.write_byte(year_offset.mode.value)
    writer.write_byte(year_offset.month)
    writer.write_signed_count(year_offset.day_of_month)
    writer.write_byte(year_offset.day_of_week)
    writer.write_bool(year_offset.advance_day_of_week)
    writer.write_signed_count(year_offset.time_of_day_secs)
    writer.write_signed_count(rule.from_year)
    # 0 means the rule continues forever
    writer.write_count(0 if rule.to_year is None else rule.to_year - rule.from_year + 1)


def _read_recurrence(reader: ZoneStreamReader) -> ZoneRecurrence:
    name = reader.read_string()
    savings_secs = reader.read_offset()
    year_offset = ZoneYearOffset(
        mode=TransitionMode(reader.read_byte()),
        month=reader.read_byte(),
        day_of_month=reader.read_signed_count(),
        day_of_week=reader.read_byte(),
        advance_day_of_week=reader.read_bool(),
        time_of_day_secs=reader.read_signed_count(),
    )
    from_year = reader.read_signed_count()
    span = reader.read_count()
    to_year = None if span == 0 else from_year + span - 1
    return ZoneRecurrence(name, savings_secs, year_offset, from_year, to_year)


def write_zone_map(writer: ZoneStreamWriter, zone_map: ZoneIntervalMap) -> None:
    if isinstance(zone_map, CachedZoneIntervalMap):
        zone_map = zone_map.zone_map
    match zone_map:
        case FixedZoneIntervalMap(interval=interval):
            writer.write_byte(_KIND_FIXED)
            _write_interval_data(writer, interval)
        case PrecomputedZoneIntervalMap(periods=periods, tail=tail):
            writer.write_byte(_KIND_PRECOMPUTED)
            writer.write_count(len(periods))
            previous = None
            for period in periods:
                # The first period always starts at the beginning of time
                if previous is not None:
                    writer.write_transition(previous, period.start)
                _write_interval_data(writer, period)
                previous = period.start
            writer.write_bool(tail is not None)
            if tail is not None:
                writer.write_transition(previous, periods[-1].end)
                writer.write_offset(tail.standard_offset_secs)
                writer.write_count(len(tail.rules))
                for rule in tail.rules:
                    _write_recurrence(writer, rule)
        case CompositeZoneIntervalMap(parts=parts):
            writer.write_byte(_KIND_COMPOSITE)
            writer.write_count(len(parts))
            previous = None
            for boundary, part in parts:
                if previous is not None:
                    writer.write_transition(previous, boundary)
                write_zone_map(writer, part)
                previous = boundary
        case _:
            raise TypeError(f"Cannot encode zone map of type {type(zone_map).__name__}")


def read_zone_map(reader: ZoneStreamReader) -> ZoneIntervalMap:
    offset = reader.offset
    kind = reader.read_byte()
    match kind:
        case 0:
            name = reader.read_string()
            wall = reader.read_offset()
            return FixedZoneIntervalMap(name, wall, reader.read_offset())
        case 1:
            starts: list[int] = []
            data: list[tuple[str, int, int]] = []
            previous = BEGINNING_OF_TIME
            for index in range(reader.read_count()):
                if index:
                    previous = reader.read_transition(previous)
                starts.append(previous)
                name = reader.read_string()
                wall = reader.read_offset()
                data.append((name, wall, reader.read_offset()))
            tail = None
            tail_start = END_OF_TIME
            if reader.read_bool():
                tail_start = reader.read_transition(previous)
                standard = reader.read_offset()
                rules = tuple(_read_recurrence(reader) for _ in range(reader.read_count()))
                tail = RecurringTail(standard, rules)
            ends = starts[1:] + [tail_start]
            periods = tuple(
                ZoneInterval(name, start, end, wall, standard)
                for (name, wall, standard), start, end in zip(data, starts, ends)
            )
            return PrecomputedZoneIntervalMap(periods, tail)
        case 2:
            parts: list[tuple[int, ZoneIntervalMap]] = []
            previous = BEGINNING_OF_TIME
            for index in range(reader.read_count()):
                if index:
                    previous = reader.read_transition(previous)
                parts.append((previous, read_zone_map(reader)))
            return CompositeZoneIntervalMap(tuple(parts))
        case _:
            raise ZoneStreamError(f"Unknown zone map kind {kind}", offset)


def normalize_aliases(aliases: dict[str, str], zone_ids: Iterable[str]) -> dict[str, str]:
    """
    Point every alias straight at a canonical zone, following chains such as
    A -> B -> C. Cycles and aliases to unknown zones are rejected.
    """
    known = set(zone_ids)
    normalized = {}
    for alias, target in aliases.items():
        seen = {alias}
        while target not in known:
            if target in seen or target not in aliases:
                raise ValueError(f"Alias {alias!r} does not lead to a known zone")
            seen.add(target)
            target = aliases[target]
        normalized[alias] = target
    return normalized


@dataclass
class ZoneDataStream:
    """
    A set of compiled zones with their aliases and optional platform id
    mapping, as stored in the binary zone data format.
    """

    version: str
    zones: dict[str, ZoneIntervalMap] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)
    platform_version: str | None = None
    platform_ids: dict[str, str] | None = None

    @classmethod
    def from_zones(
        cls,
        version: str,
        zones: Iterable[CompiledZone],
        aliases: dict[str, str] | None = None,
        platform_version: str | None = None,
        platform_ids: dict[str, str] | None = None,
    ) -> "ZoneDataStream":
        zone_maps = {zone.id: zone.zone_map for zone in zones}
        return cls(
            version,
            zone_maps,
            normalize_aliases(aliases or {}, zone_maps),
            platform_version,
            platform_ids,
        )

    @property
    def ids(self) -> list[str]:
        return sorted([*self.zones, *self.aliases])

    def canonical_id(self, zone_id: str) -> str | None:
        if zone_id in self.zones:
            return zone_id
        return self.aliases.get(zone_id)

    def map_platform_id(self, platform_id: str) -> str | None:
        """Zone id for a platform-specific id; None when there is no mapping."""
        if self.platform_ids is None:
            return None
        return self.platform_ids.get(platform_id)

    def _pooled_fields(self) -> list[tuple[FieldId, Callable[[ZoneStreamWriter], None]]]:
        def zone_writer(zone_id: str, zone_map: ZoneIntervalMap):
            def write(writer: ZoneStreamWriter) -> None:
                writer.write_string(zone_id)
                write_zone_map(writer, zone_map)

            return write

        fields = [
            (FieldId.TIME_ZONE, zone_writer(zone_id, zone_map))
            for zone_id, zone_map in self.zones.items()
        ]
        fields.append((FieldId.ID_MAP, lambda writer: writer.write_dictionary(self.aliases)))
        if self.platform_ids is not None:
            platform_ids = self.platform_ids
            fields.append(
                (FieldId.PLATFORM_ID_MAP, lambda writer: writer.write_dictionary(platform_ids))
            )
        return fields

    def write(self, file: IO[bytes]) -> None:
        pooled = self._pooled_fields()
        collector = StringCollector(io.BytesIO())
        for _, write in pooled:
            write(collector)
        pool = collector.create_pool()

        records: list[tuple[FieldId, bytes]] = []
        buffer = io.BytesIO()
        raw = ZoneStreamWriter(buffer)
        raw.write_count(len(pool))
        for value in pool:
            raw.write_raw_string(value)
        records.append((FieldId.STRING_POOL, buffer.getvalue()))

        for field_id, write in pooled:
            buffer = io.BytesIO()
            write(ZoneStreamWriter(buffer, pool))
            records.append((field_id, buffer.getvalue()))

        buffer = io.BytesIO()
        ZoneStreamWriter(buffer).write_raw_string(self.version)
        records.append((FieldId.VERSION, buffer.getvalue()))
        if self.platform_version is not None:
            buffer = io.BytesIO()
            ZoneStreamWriter(buffer).write_raw_string(self.platform_version)
            records.append((FieldId.PLATFORM_MAPPING_VERSION, buffer.getvalue()))

        # Stable sort: fields in id order, zones in insertion order
        records.sort(key=lambda record: record[0])

        file.write(struct.pack(_HEADER_FORMAT, MAGIC, FORMAT_VERSION))
        writer = ZoneStreamWriter(file)
        for field_id, payload in records:
            writer.write_byte(field_id)
            writer.write_count(len(payload))
            file.write(payload)
        logger.debug(
            "Wrote zone data %s: %d zones, %d pooled strings",
            self.version,
            len(self.zones),
            len(pool),
        )

    def encode(self) -> bytes:
        buffer = io.BytesIO()
        self.write(buffer)
        return buffer.getvalue()

    @classmethod
    def read(cls, file: IO[bytes]) -> "ZoneDataStream":
        header_size = struct.calcsize(_HEADER_FORMAT)
        header = file.read(header_size)
        if len(header) != header_size:
            raise ZoneStreamError("Invalid zone data: header is truncated.", 0)
        magic, format_version = struct.unpack(_HEADER_FORMAT, header)
        if magic != MAGIC:
            raise ZoneStreamError("Invalid zone data: Magic sequence not found.", 0)
        if format_version != FORMAT_VERSION:
            raise ZoneStreamError(
                f"Unsupported zone data format version {format_version}", len(MAGIC)
            )

        reader = ZoneStreamReader(file)
        pool: list[str] | None = None
        version: str | None = None
        zones: dict[str, ZoneIntervalMap] = {}
        aliases: dict[str, str] | None = None
        platform_version: str | None = None
        platform_ids: dict[str, str] | None = None

        while True:
            field_offset = reader.offset
            id_byte = file.read(1)
            if not id_byte:
                break
            field_id = id_byte[0]
            length = reader.read_count()
            payload_offset = reader.offset
            payload = reader.read_bytes(length)
            try:
                field_id = FieldId(field_id)
            except ValueError:
                logger.debug(
                    "Skipping unknown field %d (%d bytes) at byte %d",
                    field_id,
                    length,
                    field_offset,
                )
                continue

            field_reader = ZoneStreamReader(io.BytesIO(payload), pool, payload_offset)

            def check_single(value: object) -> None:
                if value is not None:
                    raise ZoneStreamError(f"Duplicate {field_id.name} field", field_offset)

            match field_id:
                case FieldId.STRING_POOL:
                    check_single(pool)
                    pool = [
                        field_reader.read_raw_string()
                        for _ in range(field_reader.read_count())
                    ]
                case FieldId.TIME_ZONE:
                    zone_id = field_reader.read_string()
                    if zone_id in zones:
                        raise ZoneStreamError(f"Duplicate zone {zone_id!r}", field_offset)
                    try:
                        zones[zone_id] = read_zone_map(field_reader)
                    except ZoneStreamError:
                        raise
                    except ValueError as exc:
                        raise ZoneStreamError(
                            f"Invalid data for zone {zone_id!r}: {exc}", payload_offset
                        ) from exc
                case FieldId.VERSION:
                    check_single(version)
                    version = field_reader.read_raw_string()
                case FieldId.ID_MAP:
                    check_single(aliases)
                    aliases = field_reader.read_dictionary()
                case FieldId.PLATFORM_MAPPING_VERSION:
                    check_single(platform_version)
                    platform_version = field_reader.read_raw_string()
                case FieldId.PLATFORM_ID_MAP:
                    check_single(platform_ids)
                    platform_ids = field_reader.read_dictionary()

            if field_reader.offset != payload_offset + length:
                raise ZoneStreamError(
                    f"Trailing bytes in {field_id.name} field", field_reader.offset
                )

        if version is None:
            raise ZoneStreamError("Zone data has no version field")
        for alias, target in (aliases or {}).items():
            if target not in zones:
                raise ZoneStreamError(f"Alias {alias!r} refers to unknown zone {target!r}")

        logger.debug("Read zone data %s: %d zones", version, len(zones))
        return cls(version, zones, aliases or {}, platform_version, platform_ids)

    @classmethod
    def decode(cls, data: bytes) -> "ZoneDataStream":
        return cls.read(io.BytesIO(data))

    @classmethod
    def from_path(cls, path: str) -> "ZoneDataStream":
        real = os.path.realpath(path)
        with open(real, "rb") as file:
            return cls.read(file)
