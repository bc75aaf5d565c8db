from dataclasses import dataclass

from .instants import BEGINNING_OF_TIME, END_OF_TIME, MAX_YEAR, MIN_YEAR, year_of
from .models import ZoneInterval, ZoneTransition
from .year_offset import ZoneYearOffset

# Feb 29 selectors can leave a run of years without a transition
_MAX_EMPTY_YEARS = 8


@dataclass(frozen=True)
class ZoneRecurrence:
    """
    A rule producing at most one transition per year between from_year and
    to_year (None meaning forever). `name` is already formatted for the zone
    the rule belongs to, e.g. "PDT".
    """

    name: str
    savings_secs: int
    year_offset: ZoneYearOffset
    from_year: int
    to_year: int | None = None

    def __post_init__(self) -> None:
        if self.to_year is not None and self.to_year < self.from_year:
            raise ValueError(
                f"Recurrence ends before it starts: {self.from_year}-{self.to_year}"
            )

    @property
    def is_infinite(self) -> bool:
        return self.to_year is None

    @property
    def last_year(self) -> int:
        return MAX_YEAR if self.to_year is None else min(self.to_year, MAX_YEAR)

    def applies_to(self, year: int) -> bool:
        return self.from_year <= year <= self.last_year

    def transition_for_year(
        self, year: int, standard_offset_secs: int, previous_savings_secs: int
    ) -> int | None:
        """
        Instant of this rule's transition in `year`, given the savings in
        force just before it, or None if the rule does not fire that year.
        """
        if not self.applies_to(year):
            return None
        return self.year_offset.instant(year, standard_offset_secs, previous_savings_secs)

    def next(
        self, instant: int, standard_offset_secs: int, previous_savings_secs: int
    ) -> int | None:
        """First transition of this rule strictly after `instant`."""
        wall = standard_offset_secs + previous_savings_secs
        year = max(year_of(instant + wall) - 1, self.from_year, MIN_YEAR)
        while year <= self.last_year:
            candidate = self.transition_for_year(
                year, standard_offset_secs, previous_savings_secs
            )
            if candidate is not None and candidate > instant:
                return candidate
            year += 1
        return None

    def previous(
        self, instant: int, standard_offset_secs: int, previous_savings_secs: int
    ) -> int | None:
        """Last transition of this rule at or before `instant`."""
        wall = standard_offset_secs + previous_savings_secs
        year = min(year_of(instant + wall) + 1, self.last_year)
        while year >= max(self.from_year, MIN_YEAR):
            candidate = self.transition_for_year(
                year, standard_offset_secs, previous_savings_secs
            )
            if candidate is not None and candidate <= instant:
                return candidate
            year -= 1
        return None

    def __str__(self) -> str:
        to_year = "max" if self.to_year is None else self.to_year
        return (
            f"{self.name} {self.savings_secs}s {self.year_offset} "
            f"[{self.from_year}-{to_year}]"
        )


def _changes(transition: ZoneTransition, previous: ZoneTransition | None) -> bool:
    if previous is None:
        return True
    return (
        transition.wall_offset_secs != previous.wall_offset_secs
        or transition.name != previous.name
    )


@dataclass(frozen=True)
class RecurringTail:
    """
    The residual rules of a zone, used beyond its last explicit transition.
    Transitions are computed one year at a time; nothing is materialized
    beyond the years adjacent to a query.
    """

    standard_offset_secs: int
    rules: tuple[ZoneRecurrence, ...]

    def __post_init__(self) -> None:
        if len(self.rules) < 2:
            raise ValueError("A recurring tail needs at least two rules.")
        if not all(rule.is_infinite for rule in self.rules):
            raise ValueError("All rules of a recurring tail must be infinite.")
        if len({(rule.savings_secs, rule.name) for rule in self.rules}) < 2:
            raise ValueError("Rules of a recurring tail never change the offset.")

    def _ordered_rules(self, year: int) -> list[ZoneRecurrence]:
        # Ordering by the instant computed without savings is exact unless two
        # rules fire within one savings period of each other.
        entries = []
        for index, rule in enumerate(self.rules):
            approx = rule.transition_for_year(year, self.standard_offset_secs, 0)
            if approx is not None:
                entries.append((approx, index, rule))
        entries.sort(key=lambda entry: (entry[0], entry[1]))
        return [rule for _, _, rule in entries]

    def _savings_before_year(self, year: int) -> int:
        for earlier in range(year - 1, year - 1 - _MAX_EMPTY_YEARS, -1):
            ordered = self._ordered_rules(earlier)
            if ordered:
                return ordered[-1].savings_secs
        return 0

    def transitions_for_year(self, year: int) -> list[ZoneTransition]:
        """
        All transitions the tail's rules produce in `year`, in order. When two
        rules land on the same instant the one defined later wins.
        """
        ordered = self._ordered_rules(year)
        if not ordered:
            return []
        savings = self._savings_before_year(year)
        transitions: list[ZoneTransition] = []
        for rule in ordered:
            instant = rule.transition_for_year(year, self.standard_offset_secs, savings)
            transition = ZoneTransition(
                instant, rule.name, self.standard_offset_secs, rule.savings_secs
            )
            if transitions and transitions[-1].instant == instant:
                transitions[-1] = transition
            else:
                transitions.append(transition)
            savings = rule.savings_secs
        return transitions

    def _last_transition_before_year(self, year: int) -> ZoneTransition | None:
        for earlier in range(year - 1, year - 1 - _MAX_EMPTY_YEARS, -1):
            transitions = self.transitions_for_year(earlier)
            if transitions:
                return transitions[-1]
        return None

    def next_transition(self, instant: int) -> ZoneTransition | None:
        """First transition changing the offset or name strictly after `instant`."""
        year = max(year_of(instant + self.standard_offset_secs) - 1, MIN_YEAR)
        previous = self._last_transition_before_year(year)
        while year <= MAX_YEAR:
            for transition in self.transitions_for_year(year):
                if transition.instant > instant and _changes(transition, previous):
                    return transition
                previous = transition
            year += 1
        return None

    def previous_transition(self, instant: int) -> ZoneTransition | None:
        """Last transition changing the offset or name at or before `instant`."""
        year = min(year_of(instant + self.standard_offset_secs) + 1, MAX_YEAR)
        while year >= MIN_YEAR:
            transitions = self.transitions_for_year(year)
            if transitions:
                chain = [self._last_transition_before_year(year)] + transitions
                for index in range(len(chain) - 1, 0, -1):
                    transition = chain[index]
                    if transition.instant <= instant and _changes(
                        transition, chain[index - 1]
                    ):
                        return transition
            year -= 1
        return None

    def interval_at(self, instant: int, floor: int = BEGINNING_OF_TIME) -> ZoneInterval:
        """
        The interval containing `instant`, with its start clamped to `floor`
        (the point from which the tail is in force).
        """
        previous = self.previous_transition(instant)
        if previous is None:
            raise ValueError(
                f"No tail transition at or before {instant}; the tail starts later."
            )
        following = self.next_transition(instant)
        end = following.instant if following is not None else END_OF_TIME
        return ZoneInterval(
            previous.name,
            max(previous.instant, floor),
            end,
            previous.wall_offset_secs,
            previous.standard_offset_secs,
        )
