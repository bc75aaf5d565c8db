from .cached import CachedZoneIntervalMap, cached
from .compiler import CompiledZone, RecurrenceCompiler
from .errors import (
    AmbiguousTimeError,
    LocalTimeError,
    SkippedTimeError,
    UnknownZoneError,
    ZoneCompilationError,
    ZoneStreamError,
)
from .instants import BEGINNING_OF_TIME, END_OF_TIME
from .models import TransitionMode, ZoneInterval, ZoneTransition
from .recurrence import RecurringTail, ZoneRecurrence
from .registry import DefinitionZoneSource, StreamZoneSource, ZoneRegistry
from .resolution import (
    LENIENT,
    STRICT,
    LocalMappingKind,
    LocalResolution,
    LocalResolver,
    LocalTimeRejection,
    ZoneLocalMapping,
    resolve_local,
)
from .rules import RuleDescriptor, ZoneDefinition, ZoneEra, parse_rules
from .stream import ZoneDataStream
from .year_offset import ZoneYearOffset
from .zone_map import (
    CompositeZoneIntervalMap,
    FixedZoneIntervalMap,
    PrecomputedZoneIntervalMap,
    ZoneIntervalMap,
)
