import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping

from .errors import ZoneCompilationError
from .instants import BEGINNING_OF_TIME, END_OF_TIME, MAX_YEAR, to_instant, year_of
from .models import ZoneTransition
from .recurrence import RecurringTail, ZoneRecurrence
from .rules import RuleDescriptor, ZoneDefinition, ZoneEra, format_name
from .zone_map import (
    CompositeZoneIntervalMap,
    FixedZoneIntervalMap,
    PrecomputedZoneIntervalMap,
    ZoneIntervalMap,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledZone:
    """
    A zone ready for querying: its id and the interval map built from its
    rules. Immutable once built.
    """

    id: str
    zone_map: ZoneIntervalMap

    @property
    def standard_offset_secs(self) -> int:
        """Standard offset in force at the end of the explicit history."""
        match self.zone_map:
            case PrecomputedZoneIntervalMap(tail=RecurringTail() as tail):
                return tail.standard_offset_secs
            case _:
                return self.zone_map.interval_at(END_OF_TIME - 1).standard_offset_secs

    @property
    def transitions(self) -> list[ZoneTransition]:
        """Explicit transitions, i.e. the start of every explicit interval."""
        match self.zone_map:
            case PrecomputedZoneIntervalMap(periods=periods):
                return [
                    ZoneTransition(
                        period.start,
                        period.name,
                        period.standard_offset_secs,
                        period.savings_secs,
                    )
                    for period in periods
                ]
            case _:
                return []

    @property
    def tail(self) -> RecurringTail | None:
        match self.zone_map:
            case PrecomputedZoneIntervalMap(tail=tail):
                return tail
            case _:
                return None


class _TransitionList:
    """
    Accumulates transitions, dropping those that change nothing and letting
    a later transition at the same instant replace an earlier one.
    """

    def __init__(self) -> None:
        self.transitions: list[ZoneTransition] = []

    @property
    def last(self) -> ZoneTransition | None:
        return self.transitions[-1] if self.transitions else None

    def add(self, transition: ZoneTransition) -> None:
        last = self.last
        if last is not None and transition.instant == last.instant:
            self.transitions.pop()
            previous = self.last
            if previous is None or transition.is_transition_from(previous):
                self.transitions.append(transition)
            return
        if last is not None and transition.instant < last.instant:
            raise ValueError(
                f"Transition at {transition.instant} precedes the previous one "
                f"at {last.instant}"
            )
        if transition.is_transition_from(last):
            self.transitions.append(transition)


class RecurrenceCompiler:
    """
    Compiles zone definitions and their recurring rule sets into interval
    maps: an explicit transition list up to a cutover year, followed by a
    recurring tail for the rules that continue forever.
    """

    def __init__(self, rule_sets: Mapping[str, Iterable[RuleDescriptor]]) -> None:
        self._rule_sets = {name: tuple(rules) for name, rules in rule_sets.items()}

    @classmethod
    def from_rules(cls, rules: Iterable[RuleDescriptor]) -> "RecurrenceCompiler":
        rule_sets: dict[str, list[RuleDescriptor]] = {}
        for rule in rules:
            rule_sets.setdefault(rule.rule_set, []).append(rule)
        return cls(rule_sets)

    @property
    def rule_set_names(self) -> list[str]:
        return list(self._rule_sets)

    def compile(self, definition: ZoneDefinition) -> CompiledZone:
        try:
            zone_map = self._compile_map(definition)
        except ZoneCompilationError:
            raise
        except ValueError as exc:
            raise ZoneCompilationError(definition.id, str(exc)) from exc
        logger.debug("Compiled zone %s: %r", definition.id, zone_map)
        return CompiledZone(definition.id, zone_map)

    def compile_all(self, definitions: Iterable[ZoneDefinition]) -> list[CompiledZone]:
        compiled = []
        for definition in definitions:
            zone = self.compile(definition)
            logger.info(
                "Compiled %s: %d explicit transitions, tail=%s",
                zone.id,
                len(zone.transitions),
                zone.tail is not None,
            )
            compiled.append(zone)
        return compiled

    def compile_composite(
        self,
        zone_id: str,
        parts: Iterable[tuple[datetime | int | None, ZoneDefinition]],
    ) -> CompiledZone:
        """
        Stitch independently compiled definitions together: each part is in
        force from its start instant (None for the first part) to the next.
        """
        pieces: list[tuple[int, ZoneIntervalMap]] = []
        for start, definition in parts:
            boundary = BEGINNING_OF_TIME if start is None else to_instant(start)
            pieces.append((boundary, self.compile(definition).zone_map))
        try:
            zone_map = CompositeZoneIntervalMap(tuple(pieces))
        except ValueError as exc:
            raise ZoneCompilationError(zone_id, str(exc)) from exc
        return CompiledZone(zone_id, zone_map)

    def _rules_for(
        self, definition: ZoneDefinition, era: ZoneEra
    ) -> list[tuple[RuleDescriptor, ZoneRecurrence]]:
        if era.rules is None:
            return []
        rule_set = self._rule_sets.get(era.rules)
        if rule_set is None:
            raise ZoneCompilationError(
                definition.id, "Unknown rule set", rule_set=era.rules
            )
        converted = []
        for rule in rule_set:
            try:
                recurrence = rule.to_recurrence(era.format, era.standard_offset_secs)
            except ValueError as exc:
                raise ZoneCompilationError(
                    definition.id, str(exc), rule_set=rule.rule_set, line=rule.line
                ) from exc
            converted.append((rule, recurrence))
        return converted

    def _compile_map(self, definition: ZoneDefinition) -> ZoneIntervalMap:
        transitions = _TransitionList()
        start = BEGINNING_OF_TIME
        tail: RecurringTail | None = None
        for index, era in enumerate(definition.eras):
            is_last = index == len(definition.eras) - 1
            rules = self._rules_for(definition, era)
            if rules:
                start, tail = self._add_rule_era(
                    definition, era, rules, start, transitions, is_last
                )
            else:
                start = self._add_fixed_era(era, start, transitions)
            if start is None:
                break

        if tail is None and len(transitions.transitions) == 1:
            only = transitions.transitions[0]
            return FixedZoneIntervalMap(
                only.name, only.wall_offset_secs, only.standard_offset_secs
            )

        tail_start = END_OF_TIME
        if tail is not None:
            first_tail = tail.next_transition(transitions.last.instant)
            if first_tail is None:
                tail = None
            else:
                tail_start = first_tail.instant
        return PrecomputedZoneIntervalMap.from_transitions(
            transitions.transitions, tail_start, tail
        )

    @staticmethod
    def _add_fixed_era(
        era: ZoneEra, start: int, transitions: _TransitionList
    ) -> int | None:
        savings = era.fixed_savings_secs
        transitions.add(
            ZoneTransition(
                start,
                format_name(era.format, "", era.standard_offset_secs, savings),
                era.standard_offset_secs,
                savings,
            )
        )
        return era.until_instant(savings)

    @staticmethod
    def _initial_state(
        era: ZoneEra,
        rules: list[tuple[RuleDescriptor, ZoneRecurrence]],
        start: int,
    ) -> tuple[int, str]:
        """Savings and letter in force when the era starts."""
        best: tuple[int, RuleDescriptor] | None = None
        if start != BEGINNING_OF_TIME:
            for rule, recurrence in rules:
                previous = recurrence.previous(start, era.standard_offset_secs, 0)
                if previous is not None and (best is None or previous >= best[0]):
                    best = (previous, rule)
        if best is not None:
            return best[1].savings_secs, best[1].letter
        letter = next((rule.letter for rule, _ in rules if rule.savings_secs == 0), "")
        return 0, letter

    def _add_rule_era(
        self,
        definition: ZoneDefinition,
        era: ZoneEra,
        rules: list[tuple[RuleDescriptor, ZoneRecurrence]],
        start: int,
        transitions: _TransitionList,
        is_last: bool,
    ) -> tuple[int | None, RecurringTail | None]:
        standard = era.standard_offset_secs
        savings, letter = self._initial_state(era, rules, start)
        transitions.add(
            ZoneTransition(
                start,
                format_name(era.format, letter, standard, savings),
                standard,
                savings,
            )
        )

        tail: RecurringTail | None = None
        cutover_year = MAX_YEAR + 1
        if is_last and era.until is None:
            infinite = [recurrence for _, recurrence in rules if recurrence.is_infinite]
            finite_ends = [r.to_year for _, r in rules if r.to_year is not None]
            # The year before the cutover is walked with only the infinite
            # rules firing, so the tail picks up exactly where the walk stops.
            cutover_year = max(
                [r.from_year for _, r in rules] + finite_ends
                + [year_of(start + standard)]
            ) + 2
            try:
                tail = RecurringTail(standard, tuple(infinite))
            except ValueError:
                # Fewer than two infinite rules: the state settles once the
                # cutover year has been walked.
                tail = None
                cutover_year += 1

        instant = start
        while True:
            until = era.until_instant(savings)
            best: tuple[int, ZoneRecurrence] | None = None
            for _, recurrence in rules:
                candidate = recurrence.next(instant, standard, savings)
                # "<=": on identical instants the rule defined later wins
                if candidate is not None and (best is None or candidate <= best[0]):
                    best = (candidate, recurrence)
            if best is None:
                break
            candidate, recurrence = best
            if until is not None and candidate >= until:
                break
            if year_of(candidate + standard + savings) >= cutover_year:
                break
            transitions.add(
                ZoneTransition(candidate, recurrence.name, standard, recurrence.savings_secs)
            )
            instant = candidate
            savings = recurrence.savings_secs

        logger.debug(
            "Zone %s: era %s walked to %d (cutover year %d)",
            definition.id,
            era.rules,
            instant,
            cutover_year,
        )
        return era.until_instant(savings), tail
