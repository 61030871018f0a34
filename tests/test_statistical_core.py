"""
Tests for the Statistics Engine
===============================

Frequency, absence, trend and surrepresentation metrics.
"""

import numpy as np
import pytest

from vivier.engine.statistical_core import (
    AbsenceAnalyzer,
    FrequencyAnalyzer,
    StatisticsEngine,
    TrendAnalyzer,
    absences,
    classify_trend,
    count_occurrences,
    min_max_percentiles,
    surrepresentation_z,
)
from vivier.exceptions import StatisticsUnavailable
from vivier.models import PoolKind, SignalFamily, TrendDirection, WindowSpec

from conftest import all_windows, make_leader_history


class TestFrequencyAnalyzer:
    """Tests for occurrence counts"""

    @pytest.mark.parametrize("size", [1, 37, 400])
    def test_count_identities(self, random_history, size):
        """Counts sum to 5 per draw for numbers and 2 per draw for stars"""
        window = random_history[:size]
        stats = FrequencyAnalyzer().analyze(window)
        assert stats.number_counts.sum() == 5 * size
        assert stats.star_counts.sum() == 2 * size
        assert stats.number_counts.shape == (50,)
        assert stats.star_counts.shape == (12,)

    def test_absent_numbers_count_zero(self, leader_history):
        """Numbers outside the window keep a zero count"""
        counts = count_occurrences(leader_history[:1], PoolKind.NUMBERS)
        assert counts[:5].tolist() == [1, 1, 1, 1, 1]
        assert counts[5:].sum() == 0

    def test_min_max_percentiles(self):
        """Percentiles span 0..100 across the pool"""
        pct = min_max_percentiles(np.array([2, 4, 6, 3]))
        assert pct.tolist() == [0, 50, 100, 25]

    def test_flat_counts_do_not_divide_by_zero(self):
        """Equal counts all map to 0"""
        assert min_max_percentiles(np.array([3, 3, 3])).tolist() == [0, 0, 0]


class TestAbsenceAnalyzer:
    """Tests for draws-since-last-seen"""

    def test_first_index_and_sentinel(self, leader_history):
        """Absence is the first index seen; unseen numbers keep the window length"""
        window = leader_history[:4]
        abs_numbers = absences(window, PoolKind.NUMBERS)
        assert abs_numbers[0] == 0           # number 1 in draw 0
        assert abs_numbers[5] == 1           # number 6 in draw 1
        assert abs_numbers[10] == 3          # number 11 in draw 3
        assert abs_numbers[49] == 4          # number 50 never seen

    def test_monotonic_under_front_truncation(self, random_history):
        """Dropping the oldest draws never lowers an absence"""
        longer = AbsenceAnalyzer().analyze(random_history[:300])
        for size in (200, 100, 40, 5):
            shorter = AbsenceAnalyzer().analyze(random_history[:size])
            assert (shorter.number_absence >= np.minimum(longer.number_absence, size)).all()
            assert (shorter.star_absence >= np.minimum(longer.star_absence, size)).all()
            assert (shorter.number_absence <= size).all()


class TestTrendAnalyzer:
    """Tests for rising / falling / stable classification"""

    def test_classify_thresholds(self):
        """Scores follow the ratio rules"""
        assert classify_trend(2.0) == (TrendDirection.RISING, 10)
        assert classify_trend(1.5) == (TrendDirection.RISING, 5)
        assert classify_trend(1.2) == (TrendDirection.STABLE, 5)
        assert classify_trend(0.8) == (TrendDirection.STABLE, 5)
        assert classify_trend(0.5) == (TrendDirection.FALLING, 3)
        assert classify_trend(0.0) == (TrendDirection.FALLING, 0)

    def test_idempotent(self, random_history):
        """Same window, same result"""
        analyzer = TrendAnalyzer(recent_period=30)
        first = analyzer.analyze(random_history[:150])
        second = analyzer.analyze(random_history[:150])
        assert np.array_equal(first.number_scores, second.number_scores)
        assert first.number_directions == second.number_directions
        assert first.star_directions == second.star_directions

    def test_recent_burst_is_rising(self):
        """A number concentrated in the recent period is rising"""
        history = make_leader_history(40)
        stats = TrendAnalyzer(recent_period=2).analyze(history)
        # numbers 6-10 appear in draws 1 (recent), 19 and 37
        assert stats.number_directions[5] is TrendDirection.RISING
        # numbers 46-50 appear only in draw 17, outside the recent period
        assert stats.number_directions[49] is TrendDirection.FALLING


class TestSurrepresentation:
    """Tests for the binomial z-score"""

    def test_expected_count_is_zero(self):
        """k = N*p0 gives z = 0"""
        z = surrepresentation_z(np.array([10, 20]), 100, 0.1)
        assert z[0] == pytest.approx(0.0)
        assert z[1] == pytest.approx(10 / np.sqrt(9))

    def test_empty_window(self):
        """An empty window yields zeros"""
        assert surrepresentation_z(np.array([0, 0]), 0, 0.1).tolist() == [0.0, 0.0]


class TestStatisticsEngine:
    """Tests for assembling pool statistics"""

    def test_compute_uses_each_family_window(self, leader_history):
        """Each metric comes from its own family window"""
        windows = {
            SignalFamily.HIGH: WindowSpec.last_n_draws(100),
            SignalFamily.SURREPRESENTATION: WindowSpec.last_n_draws(50),
            SignalFamily.TREND: WindowSpec.last_n_draws(80, recent_period=20),
            SignalFamily.DORMANT: WindowSpec.last_n_draws(10),
        }
        pools = StatisticsEngine().compute(leader_history, windows)
        numbers = pools[PoolKind.NUMBERS]
        assert numbers.metrics[1].frequency == 50
        assert numbers.metrics[50].absence == 10
        assert numbers.window_lengths[SignalFamily.SURREPRESENTATION] == 50
        assert numbers.metrics[1].surrepr_z == pytest.approx((25 - 5) / np.sqrt(50 * 0.1 * 0.9))

    def test_rankings(self, leader_history):
        """Frequency and absence rankings are strict"""
        pools = StatisticsEngine().compute(leader_history, all_windows())
        numbers = pools[PoolKind.NUMBERS]
        assert [m.number for m in numbers.by_frequency()[:5]] == [1, 2, 3, 4, 5]
        assert [m.number for m in numbers.by_absence()[:5]] == [46, 47, 48, 49, 50]
        assert [m.number for m in pools[PoolKind.STARS].by_absence()[:2]] == [11, 12]

    def test_memoized(self, leader_history):
        """Unchanged windows are served from the cache"""
        engine = StatisticsEngine()
        first = engine.compute(leader_history, all_windows())
        assert len(engine._cache) == 4
        second = engine.compute(leader_history, all_windows())
        assert first[PoolKind.NUMBERS].metrics == second[PoolKind.NUMBERS].metrics
        assert len(engine._cache) == 4

    def test_cache_is_bounded(self, leader_history):
        """A growing history evicts the oldest windows"""
        engine = StatisticsEngine(max_cache_entries=6)
        for size in range(100, 110):
            engine.compute(leader_history[-size:], all_windows())
        assert len(engine._cache) == 6
        assert engine._window_key(SignalFamily.HIGH, leader_history[-109:]) in engine._cache
        assert engine._window_key(SignalFamily.HIGH, leader_history[-100:]) not in engine._cache

    def test_empty_history_is_unavailable(self):
        """No draws, no statistics"""
        with pytest.raises(StatisticsUnavailable):
            StatisticsEngine().compute([], all_windows())
