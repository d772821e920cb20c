"""Vehicle health scoring.

A reading starts at 100 points. Each sensor dimension (temperature, battery,
rpm, fuel efficiency) may cost at most one penalty tier; all dimensions are
always evaluated, so a hot engine with a flat battery loses both penalties.
The status is a pure function of the resulting score.

The rules live in plain ordered tables so they can be read top to bottom and
swapped out through the ``HealthScorer`` constructor.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, NamedTuple, Optional, Sequence, Tuple

from enums import HealthStatus

MAX_SCORE = 100
MIN_SCORE = 0

# Used when a reading carries no fuel efficiency; it triggers no penalty.
DEFAULT_FUEL_EFFICIENCY = 15.0


@dataclass(frozen=True)
class SensorSnapshot:
    """The fields the engines look at. ORM rows and schemas work as well."""

    rpm: float
    temperature: float
    battery: float
    fuel: float = 100.0
    fuel_efficiency: Optional[float] = None
    speed: float = 0.0


Tier = Tuple[Callable[[float], bool], int]


@dataclass(frozen=True)
class PenaltyRule:
    """Penalty tiers for one sensor dimension; the first matching tier wins."""

    dimension: str
    tiers: Tuple[Tier, ...]

    def penalty(self, value: float) -> int:
        for predicate, amount in self.tiers:
            if predicate(value):
                return amount
        return 0


DEFAULT_PENALTY_RULES: Tuple[PenaltyRule, ...] = (
    PenaltyRule("temperature", (
        (lambda celsius: celsius > 100, 10),
        (lambda celsius: celsius > 90, 5),
    )),
    PenaltyRule("battery", (
        (lambda volts: volts < 12, 15),
        (lambda volts: volts < 12.5, 8),
    )),
    PenaltyRule("rpm", (
        (lambda rpm: rpm > 4000 or rpm < 500, 5),
    )),
    PenaltyRule("fuel_efficiency", (
        (lambda km_per_unit: km_per_unit < 10, 10),
        (lambda km_per_unit: km_per_unit < 12, 5),
    )),
)

# (inclusive lower bound, status), highest first
DEFAULT_STATUS_BUCKETS: Tuple[Tuple[int, HealthStatus], ...] = (
    (90, HealthStatus.EXCELLENT),
    (70, HealthStatus.GOOD),
    (50, HealthStatus.FAIR),
    (MIN_SCORE, HealthStatus.POOR),
)


class HealthResult(NamedTuple):
    score: int
    status: HealthStatus


def clamp_score(value: float) -> int:
    return int(max(MIN_SCORE, min(MAX_SCORE, value)))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up: 84.5 -> 85, 2250.5 -> 2251."""
    return math.floor(value + 0.5)


def status_for_score(
    score: float,
    buckets: Sequence[Tuple[int, HealthStatus]] = DEFAULT_STATUS_BUCKETS,
) -> HealthStatus:
    """Return the bucket a score falls into."""
    for lower_bound, status in buckets:
        if score >= lower_bound:
            return status
    return buckets[-1][1]


def reading_value(reading, dimension: str) -> float:
    """Read one dimension off a reading, applying the fuel efficiency default."""
    value = getattr(reading, dimension)
    if dimension == "fuel_efficiency" and value is None:
        return DEFAULT_FUEL_EFFICIENCY
    return value


class HealthScorer:
    """Maps sensor readings to a (score, status) pair. Holds no mutable state."""

    def __init__(
        self,
        rules: Sequence[PenaltyRule] = DEFAULT_PENALTY_RULES,
        buckets: Sequence[Tuple[int, HealthStatus]] = DEFAULT_STATUS_BUCKETS,
    ):
        self.rules = tuple(rules)
        self.buckets = tuple(buckets)

    def penalties(self, reading) -> dict[str, int]:
        """Penalty charged by each dimension, in rule order."""
        return {
            rule.dimension: rule.penalty(reading_value(reading, rule.dimension))
            for rule in self.rules
        }

    def compute(self, reading) -> HealthResult:
        score = clamp_score(MAX_SCORE - sum(self.penalties(reading).values()))
        return HealthResult(score, self.status_for(score))

    def status_for(self, score: float) -> HealthStatus:
        return status_for_score(score, self.buckets)

    def score_window(self, readings: Iterable) -> HealthResult:
        """Average the per-reading scores over a window of readings.

        An empty window scores as a perfect vehicle.
        """
        scores = [self.compute(reading).score for reading in readings]
        if not scores:
            return HealthResult(MAX_SCORE, self.status_for(MAX_SCORE))
        score = clamp_score(round_half_up(sum(scores) / len(scores)))
        return HealthResult(score, self.status_for(score))


_default_scorer = HealthScorer()


def compute_health(reading) -> HealthResult:
    """Score a reading with the default rule table."""
    return _default_scorer.compute(reading)
