from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .resolution import LocalTimeRejection


class ZoneCompilationError(ValueError):
    """
    Raised when a zone's rule definitions cannot be compiled. The whole zone
    fails; other zones are unaffected.
    """

    def __init__(
        self,
        zone_id: str,
        message: str,
        rule_set: str | None = None,
        line: int | None = None,
    ) -> None:
        self.zone_id = zone_id
        self.rule_set = rule_set
        self.line = line
        context = f"zone {zone_id!r}"
        if rule_set is not None:
            context += f", rule set {rule_set!r}"
        if line is not None:
            context += f", line {line}"
        super().__init__(f"{message} ({context})")


class ZoneStreamError(ValueError):
    """Raised when a zone data stream is truncated, malformed or incompatible."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)


class UnknownZoneError(LookupError):
    def __init__(self, zone_id: str) -> None:
        self.zone_id = zone_id
        super().__init__(f"No time zone found with id {zone_id!r}")


class LocalTimeError(ValueError):
    """
    Raised by LocalResolution.unwrap() when a local time was rejected.
    The rejection carries both bounding intervals.
    """

    def __init__(self, rejection: "LocalTimeRejection") -> None:
        self.rejection = rejection
        super().__init__(str(rejection))


class AmbiguousTimeError(LocalTimeError):
    pass


class SkippedTimeError(LocalTimeError):
    pass
