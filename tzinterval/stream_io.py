import sys
from typing import IO

from .errors import ZoneStreamError
from .instants import BEGINNING_OF_TIME

# Offsets: quarter hours when exact (tag 0), otherwise seconds (tag 1)
_QUARTER_HOUR = 900

# Transitions: first differences in hours/minutes/seconds, or an absolute value
_TAG_HOURS = 0
_TAG_MINUTES = 1
_TAG_SECONDS = 2
_TAG_ABSOLUTE = 3


def _zigzag(value: int) -> int:
    return value * 2 if value >= 0 else -value * 2 - 1


def _unzigzag(value: int) -> int:
    return value // 2 if value % 2 == 0 else -(value + 1) // 2


class ZoneStreamWriter:
    """
    Writes the primitive values of a zone data stream. Strings go through the
    string pool when one is given, and are written raw otherwise.
    """

    def __init__(self, file: IO[bytes], string_pool: list[str] | None = None) -> None:
        self._file = file
        self._pool_index = (
            {value: index for index, value in enumerate(string_pool)}
            if string_pool is not None
            else None
        )

    def write_byte(self, value: int) -> None:
        self._file.write(bytes((value,)))

    def write_count(self, value: int) -> None:
        """Unsigned base-128 varint, seven bits per byte, low bits first."""
        if value < 0:
            raise ValueError(f"Count must not be negative: {value}")
        encoded = bytearray()
        while True:
            low = value & 0x7F
            value >>= 7
            if value:
                encoded.append(low | 0x80)
            else:
                encoded.append(low)
                break
        self._file.write(encoded)

    def write_signed_count(self, value: int) -> None:
        self.write_count(_zigzag(value))

    def write_bool(self, value: bool) -> None:
        self.write_byte(1 if value else 0)

    def write_offset(self, offset_secs: int) -> None:
        if offset_secs % _QUARTER_HOUR == 0:
            self.write_count(_zigzag(offset_secs // _QUARTER_HOUR) << 1)
        else:
            self.write_count((_zigzag(offset_secs) << 1) | 1)

    def write_transition(self, previous: int | None, value: int) -> None:
        """
        Write an instant as the difference from the previous one in the same
        sequence, in the coarsest exact unit.
        """
        if previous is None or previous == BEGINNING_OF_TIME or value <= previous:
            self.write_count((_zigzag(value) << 2) | _TAG_ABSOLUTE)
            return
        delta = value - previous
        if delta % 3600 == 0:
            self.write_count(((delta // 3600) << 2) | _TAG_HOURS)
        elif delta % 60 == 0:
            self.write_count(((delta // 60) << 2) | _TAG_MINUTES)
        else:
            self.write_count((delta << 2) | _TAG_SECONDS)

    def write_raw_string(self, value: str) -> None:
        data = value.encode("utf-8")
        self.write_count(len(data))
        self._file.write(data)

    def write_string(self, value: str) -> None:
        if self._pool_index is None:
            self.write_raw_string(value)
            return
        index = self._pool_index.get(value)
        if index is None:
            raise ValueError(f"String {value!r} is missing from the string pool")
        self.write_count(index)

    def write_dictionary(self, dictionary: dict[str, str]) -> None:
        self.write_count(len(dictionary))
        for key, value in dictionary.items():
            self.write_string(key)
            self.write_string(value)


class StringCollector(ZoneStreamWriter):
    """
    A writer that records every pooled string instead of writing it, used to
    build a string pool ordered by descending use.
    """

    def __init__(self, file: IO[bytes]) -> None:
        super().__init__(file)
        self._counts: dict[str, int] = {}

    def write_string(self, value: str) -> None:
        self._counts[value] = self._counts.get(value, 0) + 1

    def create_pool(self) -> list[str]:
        # sorted() is stable: ties keep first-use order
        return sorted(self._counts, key=lambda value: -self._counts[value])


class ZoneStreamReader:
    """
    Reads the primitive values of a zone data stream from a file object.
    `base_offset` is added to positions in error messages.
    """

    def __init__(
        self,
        file: IO[bytes],
        string_pool: list[str] | None = None,
        base_offset: int = 0,
    ) -> None:
        self._file = file
        self._string_pool = string_pool
        self._base_offset = base_offset

    @property
    def offset(self) -> int:
        return self._base_offset + self._file.tell()

    def read_bytes(self, count: int) -> bytes:
        offset = self.offset
        if count > sys.maxsize:
            raise ZoneStreamError(f"Unexpected end of stream: wanted {count} bytes", offset)
        data = self._file.read(count)
        if len(data) != count:
            raise ZoneStreamError(
                f"Unexpected end of stream: wanted {count} bytes, got {len(data)}",
                offset,
            )
        return data

    def read_byte(self) -> int:
        return self.read_bytes(1)[0]

    def read_count(self) -> int:
        offset = self.offset
        result = 0
        shift = 0
        while True:
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
            if shift > 70:
                raise ZoneStreamError("Variable-length integer is too long", offset)

    def read_signed_count(self) -> int:
        return _unzigzag(self.read_count())

    def read_bool(self) -> bool:
        offset = self.offset
        value = self.read_byte()
        if value > 1:
            raise ZoneStreamError(f"Invalid boolean value {value}", offset)
        return value == 1

    def read_offset(self) -> int:
        value = self.read_count()
        if value & 1:
            return _unzigzag(value >> 1)
        return _unzigzag(value >> 1) * _QUARTER_HOUR

    def read_transition(self, previous: int | None) -> int:
        offset = self.offset
        value = self.read_count()
        tag = value & 3
        amount = value >> 2
        if tag == _TAG_ABSOLUTE:
            return _unzigzag(amount)
        if previous is None or previous == BEGINNING_OF_TIME:
            raise ZoneStreamError("Relative transition without a previous instant", offset)
        if tag == _TAG_HOURS:
            return previous + amount * 3600
        if tag == _TAG_MINUTES:
            return previous + amount * 60
        return previous + amount

    def read_raw_string(self) -> str:
        length = self.read_count()
        offset = self.offset
        try:
            return self.read_bytes(length).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ZoneStreamError(f"Invalid UTF-8 string: {exc}", offset) from exc

    def read_string(self) -> str:
        if self._string_pool is None:
            return self.read_raw_string()
        offset = self.offset
        index = self.read_count()
        if index >= len(self._string_pool):
            raise ZoneStreamError(
                f"String pool index {index} out of range ({len(self._string_pool)} entries)",
                offset,
            )
        return self._string_pool[index]

    def read_dictionary(self) -> dict[str, str]:
        result: dict[str, str] = {}
        for _ in range(self.read_count()):
            key = self.read_string()
            result[key] = self.read_string()
        return result
