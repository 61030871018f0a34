"""
Vivier - Scoring Engine
=======================

Blends three per-candidate sub-scores into one final score:
- Frequency: 1 - (rank - 1) / (pool size - 1) over the frequency ranking
- Surrepresentation: tanh(z / 2.5)
- Trend: direction x clamp(trend score / 10, 0, 1)

Coefficients follow the user's priority order (1st 1.0, 2nd 0.4, 3rd 0.25).
When exactly one influence knob is active, its sub-score is used as is.
The sort is a strict total order: ties walk the priority order on raw
values, then fall back to the candidate number.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

from loguru import logger

from ..models import CandidateMetric, Criterion, PoolStatistics, PriorityOrder


PRIORITY_COEFFICIENTS = (1.0, 0.4, 0.25)
Z_CAP = 2.5


@dataclass
class ScoredCandidate:
    """A candidate with its sub-scores and the final selection score"""
    number: int
    score: float
    sub_scores: Dict[Criterion, float]
    metric: CandidateMetric

    def raw(self, criterion: Criterion) -> float:
        if criterion is Criterion.FREQUENCY:
            return self.metric.frequency
        if criterion is Criterion.SURREPRESENTATION:
            return self.metric.surrepr_z
        return self.metric.trend_score


def frequency_sub_scores(stats: PoolStatistics) -> Dict[int, float]:
    ranking = stats.by_frequency()
    span = max(1, len(ranking) - 1)
    return {m.number: 1 - idx / span for idx, m in enumerate(ranking)}


def surrepresentation_sub_score(z: float) -> float:
    return math.tanh(z / Z_CAP)


def trend_sub_score(metric: CandidateMetric) -> float:
    return metric.trend_direction.sign * max(0.0, min(1.0, metric.trend_score / 10))


class ScoringEngine:
    """
    Scores and orders the candidates of one pool.

    Influence knobs are given on the 0..10 scale and used as w = knob / 10.
    """

    def __init__(
        self,
        priority_order: PriorityOrder,
        influence_frequency: float = 10,
        influence_surrepresentation: float = 0,
        influence_trend: float = 0,
    ):
        self.priority_order = priority_order
        self.weights = {
            Criterion.FREQUENCY: influence_frequency / 10,
            Criterion.SURREPRESENTATION: influence_surrepresentation / 10,
            Criterion.TREND: influence_trend / 10,
        }
        active = [c for c in self.priority_order if self.weights[c] > 0]
        self.single_criterion = active[0] if len(active) == 1 else None

    def combine(self, sub_scores: Dict[Criterion, float]) -> float:
        if self.single_criterion is not None:
            return sub_scores[self.single_criterion]
        return sum(
            PRIORITY_COEFFICIENTS[pos] * self.weights[criterion] * sub_scores[criterion]
            for pos, criterion in enumerate(self.priority_order)
        )

    def sort_key(self, candidate: ScoredCandidate) -> Tuple:
        tie_break = tuple(-candidate.raw(c) for c in self.priority_order)
        return (-candidate.score,) + tie_break + (candidate.number,)

    def order(self, candidates: List[ScoredCandidate]) -> List[ScoredCandidate]:
        return sorted(candidates, key=self.sort_key)

    def score_pool(self, stats: PoolStatistics) -> List[ScoredCandidate]:
        """
        Score every candidate of a pool.

        Args:
            stats: Candidate metrics of numbers or stars

        Returns:
            All candidates ordered best first
        """
        freq = frequency_sub_scores(stats)
        scored = []
        for metric in stats.by_number():
            sub_scores = {
                Criterion.FREQUENCY: freq[metric.number],
                Criterion.SURREPRESENTATION: surrepresentation_sub_score(metric.surrepr_z),
                Criterion.TREND: trend_sub_score(metric),
            }
            scored.append(ScoredCandidate(metric.number, self.combine(sub_scores), sub_scores, metric))

        ordered = self.order(scored)
        logger.debug(
            f"Scored {len(ordered)} {stats.kind.value} "
            f"(single={self.single_criterion.value if self.single_criterion else None}, "
            f"top={[c.number for c in ordered[:5]]})"
        )
        return ordered
