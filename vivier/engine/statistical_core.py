"""
Vivier - Statistical Core Module
================================

Turns a window of draws into per-candidate metrics.

Components:
- FrequencyAnalyzer: occurrence counts and min-max percentiles
- AbsenceAnalyzer: draws since last occurrence (dormancy)
- TrendAnalyzer: recent period vs whole window (rising / falling / stable)
- surrepresentation_z: binomial z-score of observed counts
- StatisticsEngine: assembles PoolStatistics from one window per signal family

Every analyzer is a pure function of its input window. The engine only
keeps a memoization cache keyed by the resolved window.
"""

import threading
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from ..models import (
    CandidateMetric,
    Draw,
    PoolKind,
    PoolStatistics,
    SignalFamily,
    TrendDirection,
    WindowSpec,
)
from ..windows import resolve_window


RISING_RATIO = 1.2
FALLING_RATIO = 0.8
DEFAULT_RECENT_PERIOD = 65
DEFAULT_CACHE_ENTRIES = 64


def round_half_up(x: float) -> int:
    """Round .5 away from zero for positives (0.5 -> 1, 2.5 -> 3)"""
    return int(np.floor(x + 0.5))


def count_occurrences(draws: List[Draw], kind: PoolKind) -> np.ndarray:
    """Occurrences of each candidate; index i holds candidate i + 1"""
    counts = np.zeros(kind.max_value, dtype=int)
    for draw in draws:
        for value in draw.values(kind):
            counts[value - 1] += 1
    return counts


def min_max_percentiles(counts: np.ndarray) -> np.ndarray:
    """Counts scaled to 0..100 across the pool"""
    lo, hi = int(counts.min()), int(counts.max())
    span = (hi - lo) or 1
    return np.array([round_half_up((c - lo) / span * 100) for c in counts], dtype=int)


def classify_trend(ratio: float) -> Tuple[TrendDirection, int]:
    """Map a recent/expected ratio to a direction and a 0..10 score"""
    if ratio > RISING_RATIO:
        return TrendDirection.RISING, min(10, round_half_up((ratio - 1) * 10))
    if ratio < FALLING_RATIO:
        return TrendDirection.FALLING, max(0, round_half_up(ratio * 5))
    return TrendDirection.STABLE, 5


def surrepresentation_z(counts: np.ndarray, window_size: int, p0: float) -> np.ndarray:
    """
    Binomial z-score of each observed count.

    z = (k - N*p0) / sqrt(N*p0*(1-p0))
    """
    if window_size <= 0:
        return np.zeros(len(counts))
    denom = np.sqrt(window_size * p0 * (1 - p0))
    return (counts - window_size * p0) / denom


@dataclass
class FrequencyStats:
    """Container for frequency analysis results"""
    number_counts: np.ndarray   # Shape: (50,)
    star_counts: np.ndarray     # Shape: (12,)
    number_percentiles: np.ndarray
    star_percentiles: np.ndarray
    window_size: int

    def counts(self, kind: PoolKind) -> np.ndarray:
        return self.number_counts if kind is PoolKind.NUMBERS else self.star_counts

    def percentiles(self, kind: PoolKind) -> np.ndarray:
        return self.number_percentiles if kind is PoolKind.NUMBERS else self.star_percentiles


class FrequencyAnalyzer:
    """Occurrence counts over a window, raw and min-max normalized"""

    def analyze(self, draws: List[Draw]) -> FrequencyStats:
        numbers = count_occurrences(draws, PoolKind.NUMBERS)
        stars = count_occurrences(draws, PoolKind.STARS)
        return FrequencyStats(
            number_counts=numbers,
            star_counts=stars,
            number_percentiles=min_max_percentiles(numbers),
            star_percentiles=min_max_percentiles(stars),
            window_size=len(draws),
        )


@dataclass
class AbsenceStats:
    """Container for absence (dormancy) results"""
    number_absence: np.ndarray  # Shape: (50,) - draws since last appearance
    star_absence: np.ndarray    # Shape: (12,)
    window_size: int

    def absence(self, kind: PoolKind) -> np.ndarray:
        return self.number_absence if kind is PoolKind.NUMBERS else self.star_absence


def absences(draws: List[Draw], kind: PoolKind) -> np.ndarray:
    """
    Index of the first (most recent) draw holding each candidate.

    Candidates never seen keep the window length: "at least this long".
    """
    total = len(draws)
    out = np.full(kind.max_value, total, dtype=int)
    seen = np.zeros(kind.max_value, dtype=bool)
    for idx, draw in enumerate(draws):
        for value in draw.values(kind):
            if not seen[value - 1]:
                seen[value - 1] = True
                out[value - 1] = idx
        if seen.all():
            break
    return out


class AbsenceAnalyzer:
    """Draws since last occurrence, scanning from the latest draw"""

    def analyze(self, draws: List[Draw]) -> AbsenceStats:
        return AbsenceStats(
            number_absence=absences(draws, PoolKind.NUMBERS),
            star_absence=absences(draws, PoolKind.STARS),
            window_size=len(draws),
        )


@dataclass
class TrendStats:
    """Container for trend analysis results"""
    number_scores: np.ndarray
    star_scores: np.ndarray
    number_directions: List[TrendDirection]
    star_directions: List[TrendDirection]
    recent_period: int
    window_size: int

    def scores(self, kind: PoolKind) -> np.ndarray:
        return self.number_scores if kind is PoolKind.NUMBERS else self.star_scores

    def directions(self, kind: PoolKind) -> List[TrendDirection]:
        return self.number_directions if kind is PoolKind.NUMBERS else self.star_directions


def trend_labels(draws: List[Draw], recent_period: int, kind: PoolKind) -> Tuple[np.ndarray, List[TrendDirection]]:
    """
    Compare the first R draws of a window against the whole window.

    expected = (count_total / len(window)) * R, ratio = count_recent / expected
    """
    total_len = len(draws)
    r = min(recent_period, total_len) or 1
    total_counts = count_occurrences(draws, kind)
    recent_counts = count_occurrences(draws[:r], kind)

    scores = np.zeros(kind.max_value, dtype=int)
    directions: List[TrendDirection] = []
    for i in range(kind.max_value):
        expected = (total_counts[i] / total_len) * r if total_len > 0 else 0.0
        ratio = recent_counts[i] / expected if expected > 0 else 0.0
        direction, score = classify_trend(ratio)
        scores[i] = score
        directions.append(direction)
    return scores, directions


class TrendAnalyzer:
    """
    Momentum of each candidate: recent period R against the full window.

    ratio > 1.2 -> rising, ratio < 0.8 -> falling, otherwise stable.
    """

    def __init__(self, recent_period: int = DEFAULT_RECENT_PERIOD):
        self.recent_period = recent_period

    def analyze(self, draws: List[Draw]) -> TrendStats:
        n_scores, n_dirs = trend_labels(draws, self.recent_period, PoolKind.NUMBERS)
        s_scores, s_dirs = trend_labels(draws, self.recent_period, PoolKind.STARS)
        return TrendStats(
            number_scores=n_scores,
            star_scores=s_scores,
            number_directions=n_dirs,
            star_directions=s_dirs,
            recent_period=min(self.recent_period, len(draws)) or 1,
            window_size=len(draws),
        )


WindowKey = Tuple[str, int, Optional[date], Optional[date], Optional[int]]


class StatisticsEngine:
    """
    Builds candidate metrics from one resolved window per signal family.

    - High window: frequency and frequency percentile
    - Surrepresentation window: z-score
    - Trend window (+ recent period R): trend score and direction
    - Dormant window: absence
    """

    def __init__(self, max_cache_entries: int = DEFAULT_CACHE_ENTRIES):
        self.frequency_analyzer = FrequencyAnalyzer()
        self.absence_analyzer = AbsenceAnalyzer()
        self.max_cache_entries = max_cache_entries
        self._cache: Dict[WindowKey, object] = {}
        self._lock = threading.Lock()
        logger.info("StatisticsEngine initialized")

    @staticmethod
    def _window_key(family: SignalFamily, window: List[Draw], recent: Optional[int] = None) -> WindowKey:
        return (family.value, len(window), window[0].draw_date, window[-1].draw_date, recent)

    def _memo(self, key: WindowKey, compute):
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        value = compute()
        with self._lock:
            if key not in self._cache:
                # oldest entries go first once the history has moved on
                while len(self._cache) >= self.max_cache_entries:
                    self._cache.pop(next(iter(self._cache)))
                self._cache[key] = value
            return self._cache[key]

    def resolve_windows(
        self,
        history: List[Draw],
        windows: Dict[SignalFamily, WindowSpec],
        reference_date: Optional[date] = None,
    ) -> Dict[SignalFamily, List[Draw]]:
        """Resolve each family's window; raises StatisticsUnavailable on an empty one"""
        return {
            family: resolve_window(history, windows[family], reference_date, family)
            for family in SignalFamily
        }

    def compute(
        self,
        history: List[Draw],
        windows: Dict[SignalFamily, WindowSpec],
        reference_date: Optional[date] = None,
    ) -> Dict[PoolKind, PoolStatistics]:
        """
        Compute per-candidate metrics for numbers and stars.

        Args:
            history: Draws ordered most recent first
            windows: One WindowSpec per signal family
            reference_date: Anchor of calendar-based windows

        Returns:
            PoolStatistics for PoolKind.NUMBERS and PoolKind.STARS

        Raises:
            StatisticsUnavailable: If any family's window is empty
        """
        resolved = self.resolve_windows(history, windows, reference_date)

        high = resolved[SignalFamily.HIGH]
        surrepr = resolved[SignalFamily.SURREPRESENTATION]
        trend = resolved[SignalFamily.TREND]
        dormant = resolved[SignalFamily.DORMANT]
        recent = windows[SignalFamily.TREND].recent_period or DEFAULT_RECENT_PERIOD

        freq_stats = self._memo(
            self._window_key(SignalFamily.HIGH, high), lambda: self.frequency_analyzer.analyze(high)
        )
        surrepr_stats = self._memo(
            self._window_key(SignalFamily.SURREPRESENTATION, surrepr),
            lambda: self.frequency_analyzer.analyze(surrepr),
        )
        trend_stats = self._memo(
            self._window_key(SignalFamily.TREND, trend, recent), lambda: TrendAnalyzer(recent).analyze(trend)
        )
        absence_stats = self._memo(
            self._window_key(SignalFamily.DORMANT, dormant), lambda: self.absence_analyzer.analyze(dormant)
        )

        lengths = {family: len(window) for family, window in resolved.items()}
        pools = {}
        for kind in PoolKind:
            z = surrepresentation_z(surrepr_stats.counts(kind), len(surrepr), kind.p0)
            counts = freq_stats.counts(kind)
            percentiles = freq_stats.percentiles(kind)
            t_scores = trend_stats.scores(kind)
            t_dirs = trend_stats.directions(kind)
            absence = absence_stats.absence(kind)
            metrics = {
                i + 1: CandidateMetric(
                    number=i + 1,
                    frequency=int(counts[i]),
                    frequency_percentile=int(percentiles[i]),
                    trend_score=int(t_scores[i]),
                    trend_direction=t_dirs[i],
                    absence=int(absence[i]),
                    surrepr_z=float(z[i]),
                )
                for i in range(kind.max_value)
            }
            pools[kind] = PoolStatistics(kind=kind, metrics=metrics, window_lengths=dict(lengths))

        logger.debug(
            f"Statistics computed (high={lengths[SignalFamily.HIGH]}, "
            f"surrepr={lengths[SignalFamily.SURREPRESENTATION]}, "
            f"trend={lengths[SignalFamily.TREND]}/R={recent}, dormant={lengths[SignalFamily.DORMANT]})"
        )
        return pools
