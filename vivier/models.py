"""
Vivier - Data Model
===================

Value types shared by every engine component:
- Draw: one historical EuroMillions outcome (5 numbers + 2 stars)
- WindowSpec: how much history a signal family looks at
- CandidateMetric / PoolStatistics: per-number metrics over resolved windows
- PriorityOrder: user precedence among Frequency / Surrepresentation / Trend
- GenerationRequest / GeneratedCombination: pipeline input and output

Histories are always ordered most recent first (index 0 = latest draw).
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .exceptions import InvalidRequest


NUMBER_MAX = 50
STAR_MAX = 12
NUMBERS_PER_DRAW = 5
STARS_PER_DRAW = 2


class PoolKind(str, Enum):
    """The two independent pools of a EuroMillions grid"""
    NUMBERS = "numbers"
    STARS = "stars"

    @property
    def max_value(self) -> int:
        return NUMBER_MAX if self is PoolKind.NUMBERS else STAR_MAX

    @property
    def per_draw(self) -> int:
        return NUMBERS_PER_DRAW if self is PoolKind.NUMBERS else STARS_PER_DRAW

    @property
    def p0(self) -> float:
        """Probability that a given candidate appears in one draw"""
        return self.per_draw / self.max_value


@dataclass(frozen=True)
class Draw:
    """One recorded draw. Immutable once created."""
    draw_date: date
    numbers: Tuple[int, ...]
    stars: Tuple[int, ...]

    def __post_init__(self):
        numbers = tuple(sorted(int(n) for n in self.numbers))
        stars = tuple(sorted(int(s) for s in self.stars))
        if len(set(numbers)) != NUMBERS_PER_DRAW or not all(1 <= n <= NUMBER_MAX for n in numbers):
            raise ValueError(f"Draw {self.draw_date}: expected 5 distinct numbers in 1..50, got {self.numbers}")
        if len(set(stars)) != STARS_PER_DRAW or not all(1 <= s <= STAR_MAX for s in stars):
            raise ValueError(f"Draw {self.draw_date}: expected 2 distinct stars in 1..12, got {self.stars}")
        object.__setattr__(self, "numbers", numbers)
        object.__setattr__(self, "stars", stars)

    def values(self, kind: PoolKind) -> Tuple[int, ...]:
        return self.numbers if kind is PoolKind.NUMBERS else self.stars


class WindowType(str, Enum):
    ALL = "all"
    LAST_N_DRAWS = "last_n_draws"
    LAST_YEAR = "last_year"
    CUSTOM = "custom"


class WindowUnit(str, Enum):
    DRAWS = "draws"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


@dataclass(frozen=True)
class WindowSpec:
    """
    Window specification for one signal family.

    `recent_period` is only meaningful for the Trend family: the count of
    most recent draws compared against the whole window.
    """
    type: WindowType = WindowType.ALL
    value: Optional[int] = None
    unit: Optional[WindowUnit] = None
    recent_period: Optional[int] = None

    @classmethod
    def all(cls, recent_period: Optional[int] = None) -> "WindowSpec":
        return cls(WindowType.ALL, recent_period=recent_period)

    @classmethod
    def last_n_draws(cls, n: int, recent_period: Optional[int] = None) -> "WindowSpec":
        return cls(WindowType.LAST_N_DRAWS, value=int(n), unit=WindowUnit.DRAWS, recent_period=recent_period)

    @classmethod
    def last_year(cls, recent_period: Optional[int] = None) -> "WindowSpec":
        return cls(WindowType.LAST_YEAR, recent_period=recent_period)

    @classmethod
    def custom(cls, value: int, unit: WindowUnit, recent_period: Optional[int] = None) -> "WindowSpec":
        return cls(WindowType.CUSTOM, value=int(value), unit=WindowUnit(unit), recent_period=recent_period)

    def describe(self) -> str:
        if self.type is WindowType.ALL:
            base = "all"
        elif self.type is WindowType.LAST_YEAR:
            base = "last_year"
        else:
            base = f"{self.value} {self.unit.value if self.unit else 'draws'}"
        if self.recent_period:
            base += f" (R={self.recent_period})"
        return base


class SignalFamily(str, Enum):
    HIGH = "high"
    SURREPRESENTATION = "surrepresentation"
    TREND = "trend"
    DORMANT = "dormant"


class Criterion(str, Enum):
    FREQUENCY = "frequency"
    SURREPRESENTATION = "surrepresentation"
    TREND = "trend"


class TrendDirection(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"

    @property
    def sign(self) -> int:
        if self is TrendDirection.RISING:
            return 1
        if self is TrendDirection.FALLING:
            return -1
        return 0


class SourceTag(str, Enum):
    HIGH = "high"
    DORMANT = "dormant"


@dataclass(frozen=True)
class CandidateMetric:
    """Metrics of one candidate, each taken over its own family's window"""
    number: int
    frequency: int
    frequency_percentile: int
    trend_score: int
    trend_direction: TrendDirection
    absence: int
    surrepr_z: float


@dataclass
class PoolStatistics:
    """All candidate metrics of one pool plus the window lengths they came from"""
    kind: PoolKind
    metrics: Dict[int, CandidateMetric]
    window_lengths: Dict[SignalFamily, int] = field(default_factory=dict)

    def by_number(self) -> List[CandidateMetric]:
        return [self.metrics[n] for n in sorted(self.metrics)]

    def by_frequency(self) -> List[CandidateMetric]:
        """Frequency ranking: frequency desc, then trend score desc, then number asc"""
        return sorted(self.metrics.values(), key=lambda m: (-m.frequency, -m.trend_score, m.number))

    def by_absence(self) -> List[CandidateMetric]:
        """Dormant ranking: longest absence first, then number asc"""
        return sorted(self.metrics.values(), key=lambda m: (-m.absence, m.number))


class PriorityOrder:
    """A permutation of the three scoring criteria"""

    def __init__(self, criteria: Iterable):
        criteria = list(criteria)
        try:
            order = tuple(Criterion(c) for c in criteria)
        except ValueError as e:
            raise InvalidRequest(f"Unknown priority criterion: {e}", field="priority_order")
        if len(order) != 3 or set(order) != set(Criterion):
            raise InvalidRequest(
                f"Priority order must contain frequency, surrepresentation and trend exactly once, got {criteria}",
                field="priority_order",
            )
        self.criteria: Tuple[Criterion, ...] = order

    @classmethod
    def default(cls) -> "PriorityOrder":
        return cls([Criterion.FREQUENCY, Criterion.SURREPRESENTATION, Criterion.TREND])

    def position(self, criterion: Criterion) -> int:
        """0-based position of a criterion (0 = first priority)"""
        return self.criteria.index(criterion)

    def __iter__(self):
        return iter(self.criteria)

    def __eq__(self, other) -> bool:
        return isinstance(other, PriorityOrder) and self.criteria == other.criteria

    def __hash__(self) -> int:
        return hash(self.criteria)

    def __repr__(self) -> str:
        return f"PriorityOrder({[c.value for c in self.criteria]})"


@dataclass(frozen=True)
class CategoryWeights:
    """Requested picks per category for one pool (floored to integers on use)"""
    high: float = 0.0
    dormant: float = 0.0

    @property
    def is_zero(self) -> bool:
        return int(self.high) <= 0 and int(self.dormant) <= 0


KNOB_FIELDS = (
    "influence_frequency",
    "influence_surrepresentation",
    "influence_trend",
    "vivier_level",
    "determinism_level",
    "dormant_numbers_level",
    "dormant_stars_level",
)


@dataclass
class GenerationRequest:
    """
    A single "generate" request.

    All knobs live on a 0..10 scale. Pool sizes come from the vivier level
    unless `pool_size_numbers` / `pool_size_stars` override them.
    """
    target_numbers: int = 5
    target_stars: int = 2
    influence_frequency: float = 10
    influence_surrepresentation: float = 0
    influence_trend: float = 0
    vivier_level: int = 10
    determinism_level: float = 10
    dormant_numbers_level: int = 0
    dormant_stars_level: int = 0
    number_weights: Optional[CategoryWeights] = None
    star_weights: Optional[CategoryWeights] = None
    priority_order: PriorityOrder = field(default_factory=PriorityOrder.default)
    pool_size_numbers: Optional[int] = None
    pool_size_stars: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.priority_order, PriorityOrder):
            self.priority_order = PriorityOrder(self.priority_order)
        for name in KNOB_FIELDS:
            value = getattr(self, name)
            if value is None or not 0 <= value <= 10:
                raise InvalidRequest(f"{name} must be within 0..10, got {value}", field=name)

    def category_weights(self, kind: PoolKind) -> Optional[CategoryWeights]:
        return self.number_weights if kind is PoolKind.NUMBERS else self.star_weights

    def dormant_level(self, kind: PoolKind) -> int:
        return self.dormant_numbers_level if kind is PoolKind.NUMBERS else self.dormant_stars_level

    def target(self, kind: PoolKind) -> int:
        return self.target_numbers if kind is PoolKind.NUMBERS else self.target_stars


def canonical_key(numbers: Sequence[int], stars: Sequence[int]) -> str:
    """Sorted, stringified combination used for duplicate detection: '1-2-3-4-5|1-2'"""
    n = "-".join(str(x) for x in sorted(numbers))
    s = "-".join(str(x) for x in sorted(stars))
    return f"{n}|{s}"


@dataclass(frozen=True)
class GeneratedCombination:
    """Output of one successful generation. Never mutated after creation."""
    numbers: Tuple[int, ...]
    stars: Tuple[int, ...]
    number_sources: Mapping[int, SourceTag]
    star_sources: Mapping[int, SourceTag]

    @property
    def canonical_key(self) -> str:
        return canonical_key(self.numbers, self.stars)

    @property
    def source_tags(self) -> Dict[str, Dict[int, str]]:
        return {
            "numbers": {n: tag.value for n, tag in self.number_sources.items()},
            "stars": {s: tag.value for s, tag in self.star_sources.items()},
        }
