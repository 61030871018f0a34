"""
Tests for the uniqueness guard and the end-to-end generator
============================================================
"""

import threading
from datetime import date
from itertools import combinations
from unittest.mock import Mock

import numpy as np
import pytest

from vivier.config import VivierConfig
from vivier.engine.calibration import CalibrationState
from vivier.engine.generator import CombinationGenerator, pool_size
from vivier.engine.scoring import ScoringEngine
from vivier.engine.statistical_core import StatisticsEngine
from vivier.engine.uniqueness import GenerationContext, IssuedKeyCache, UniquenessGuard
from vivier.exceptions import GenerationExhausted, InvalidRequest, IssuedKeysUnavailable, StatisticsUnavailable
from vivier.models import (
    CategoryWeights,
    GenerationRequest,
    PoolKind,
    PriorityOrder,
    SignalFamily,
    SourceTag,
    WindowSpec,
    canonical_key,
)

from conftest import all_windows

TARGET = date(2026, 10, 16)


def make_generator(history, issued=None, max_attempts=180, seed=11):
    provider = Mock(return_value=set(issued or ()))
    generator = CombinationGenerator(
        history_provider=lambda: history,
        issued_provider=provider,
        config=VivierConfig(max_attempts=max_attempts),
        calibration_state=CalibrationState(enabled=False),
        rng=np.random.default_rng(seed),
    )
    return generator, provider


class _Result:
    def __init__(self, key):
        self.canonical_key = key


class TestIssuedKeyCache:
    """Tests for the per-date issued-key memo"""

    def test_fetched_once_per_date(self):
        """The provider runs once per target date"""
        provider = Mock(return_value=["1-2-3-4-5|1-2"])
        cache = IssuedKeyCache(provider)
        assert cache.get(TARGET) == {"1-2-3-4-5|1-2"}
        assert cache.get(TARGET) == {"1-2-3-4-5|1-2"}
        cache.get(date(2026, 10, 20))
        assert provider.call_count == 2

    def test_first_resolved_result_wins(self):
        """A concurrent fetch that resolves first keeps its slot"""
        calls = []

        def provider(target_date):
            calls.append(target_date)
            if len(calls) == 1:
                # another caller resolves while this fetch is in flight
                cache.get(target_date)
                return ["late"]
            return ["early"]

        cache = IssuedKeyCache(provider)
        assert cache.get(TARGET) == {"early"}
        assert cache.get(TARGET) == {"early"}
        assert len(calls) == 2

    def test_failed_fetch_is_not_cached(self):
        """A provider error propagates and the next call fetches again"""
        provider = Mock(side_effect=[IssuedKeysUnavailable("database is locked"), ["1-2-3-4-5|1-2"]])
        cache = IssuedKeyCache(provider)
        with pytest.raises(IssuedKeysUnavailable):
            cache.get(TARGET)
        assert cache.get(TARGET) == {"1-2-3-4-5|1-2"}
        assert provider.call_count == 2


class TestUniquenessGuard:
    """Tests for the bounded retry loop"""

    def _context(self, issued=()):
        return GenerationContext(target_date=TARGET, pool_config=(5, 2), issued=frozenset(issued))

    def test_retries_until_new(self):
        """Forbidden keys trigger a retry; the accepted key joins the session"""
        guard = UniquenessGuard(IssuedKeyCache(lambda d: set()), max_attempts=10)
        context = self._context(issued={"a", "b"})
        keys = iter(["a", "b", "a", "c"])
        result, attempts = guard.run(context, lambda n: _Result(next(keys)))
        assert result.canonical_key == "c"
        assert attempts == 4
        assert "c" in context.session

    def test_exhausted(self):
        """Running out of attempts raises GenerationExhausted"""
        guard = UniquenessGuard(IssuedKeyCache(lambda d: set()), max_attempts=5)
        context = self._context(issued={"a"})
        with pytest.raises(GenerationExhausted) as exc:
            guard.run(context, lambda n: _Result("a"))
        assert exc.value.attempts == 5
        assert exc.value.forbidden == 1

    def test_session_shared_across_pool_configs(self):
        """Session keys of a date apply to every pool configuration"""
        guard = UniquenessGuard(IssuedKeyCache(lambda d: set()))
        first = guard.context(TARGET, (5, 2))
        guard.run(first, lambda n: _Result("x"))
        second = guard.context(TARGET, (9, 3))
        assert second.is_forbidden("x")
        assert not guard.context(date(2026, 10, 20), (5, 2)).is_forbidden("x")

    def test_concurrent_runs_accept_a_key_once(self):
        """Threads finishing with the same key concurrently: one accepts, the others retry"""
        guard = UniquenessGuard(IssuedKeyCache(lambda d: set()), max_attempts=1)
        context = guard.context(TARGET, (5, 2))
        workers = 8
        barrier = threading.Barrier(workers)
        accepted, exhausted = [], []

        def attempt(n):
            barrier.wait()
            return _Result("k")

        def worker():
            try:
                accepted.append(guard.run(context, attempt))
            except GenerationExhausted:
                exhausted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(accepted) == 1
        assert len(exhausted) == workers - 1


class TestPoolSize:
    """Tests for vivier graduations"""

    @pytest.mark.parametrize("kind,level,target,expected", [
        (PoolKind.NUMBERS, 0, 5, 5),
        (PoolKind.NUMBERS, 4, 5, 12),
        (PoolKind.NUMBERS, 10, 5, 50),
        (PoolKind.NUMBERS, 0, 8, 8),
        (PoolKind.STARS, 3, 2, 5),
        (PoolKind.STARS, 0, 4, 4),
    ])
    def test_graduations(self, kind, level, target, expected):
        """Pool size follows the table and never drops below the target"""
        assert pool_size(kind, level, target) == expected

    def test_override(self):
        """Explicit pool sizes replace the graduation"""
        assert pool_size(PoolKind.NUMBERS, 10, 5, override=6) == 6
        assert pool_size(PoolKind.STARS, 10, 2, override=1) == 2


class TestCombinationGenerator:
    """End-to-end scenarios on a 2000-draw history"""

    def test_all_knobs_top_frequency(self, leader_history):
        """Full influence at determinism 10 returns the most frequent numbers and stars"""
        request = GenerationRequest(
            influence_frequency=10,
            influence_surrepresentation=10,
            influence_trend=10,
            determinism_level=10,
        )
        keys = set()
        for _ in range(2):
            fresh, _ = make_generator(leader_history)
            result = fresh.generate(request, target_date=TARGET, windows=all_windows())
            keys.add(result.canonical_key)
            assert result.combination.numbers == (1, 2, 3, 4, 5)
            assert result.combination.stars == (1, 2)
            assert result.attempts == 1
            assert set(result.combination.source_tags["numbers"].values()) == {"high"}
        assert keys == {"1-2-3-4-5|1-2"}

    def test_dormant_level_ten(self, leader_history):
        """Every number comes from the absence ranking, none from the scored basket"""
        generator, _ = make_generator(leader_history)
        request = GenerationRequest(vivier_level=0, dormant_numbers_level=10)
        result = generator.generate(request, target_date=TARGET, windows=all_windows())
        numbers = set(result.combination.numbers)
        assert numbers == {46, 47, 48, 49, 50}
        assert numbers.isdisjoint({1, 2, 3, 4, 5})
        assert set(result.combination.number_sources.values()) == {SourceTag.DORMANT}
        replacement = result.replacements[PoolKind.NUMBERS]
        assert replacement.removed == [1, 2, 3, 4, 5]
        assert replacement.injected == [46, 47, 48, 49, 50]
        assert result.replacements[PoolKind.STARS].injected == []

    def test_last_free_combination_is_found(self, leader_history):
        """With 6 candidates and 5 combinations issued, the sixth is returned, then exhaustion"""
        stats = StatisticsEngine().compute(leader_history, all_windows())
        scoring = ScoringEngine(PriorityOrder.default(), 10, 0, 0)
        top6 = [c.number for c in scoring.score_pool(stats[PoolKind.NUMBERS])[:6]]
        subsets = list(combinations(sorted(top6), 5))
        issued = {canonical_key(s, (1, 2)) for s in subsets[:5]}
        expected = canonical_key(subsets[5], (1, 2))

        generator, provider = make_generator(leader_history, issued=issued)
        request = GenerationRequest(determinism_level=0, pool_size_numbers=6, pool_size_stars=2)
        result = generator.generate(request, target_date=TARGET, windows=all_windows())
        assert result.canonical_key == expected

        with pytest.raises(GenerationExhausted):
            generator.generate(request, target_date=TARGET, windows=all_windows())
        provider.assert_called_once_with(TARGET)

    def test_category_weights(self, leader_history):
        """Explicit counts draw from the High basket and the Dormant pool"""
        generator, _ = make_generator(leader_history)
        request = GenerationRequest(vivier_level=0, number_weights=CategoryWeights(high=3, dormant=2))
        result = generator.generate(request, target_date=TARGET, windows=all_windows())
        assert set(result.combination.numbers) == {1, 2, 3, 46, 47}
        sources = result.combination.number_sources
        assert sources[1] is SourceTag.HIGH
        assert sources[46] is SourceTag.DORMANT

    def test_dormant_category_with_full_vivier(self, leader_history):
        """Picks drawn from the Dormant category keep their tag even when the basket holds every number"""
        generator, _ = make_generator(leader_history)
        request = GenerationRequest(vivier_level=10, number_weights=CategoryWeights(dormant=5))
        result = generator.generate(request, target_date=TARGET, windows=all_windows())
        assert result.combination.numbers == (46, 47, 48, 49, 50)
        assert set(result.combination.number_sources.values()) == {SourceTag.DORMANT}
        assert set(result.combination.star_sources.values()) == {SourceTag.HIGH}

    def test_issued_read_failure_blocks_generation(self, leader_history):
        """An unreadable issued store fails the request and is retried on the next one"""
        issued = {"1-2-3-4-5|1-2"}
        provider = Mock(side_effect=[IssuedKeysUnavailable("database is locked"), issued])
        generator = CombinationGenerator(
            history_provider=lambda: leader_history,
            issued_provider=provider,
            calibration_state=CalibrationState(enabled=False),
            rng=np.random.default_rng(3),
        )
        request = GenerationRequest(vivier_level=1, determinism_level=0)
        with pytest.raises(IssuedKeysUnavailable):
            generator.generate(request, target_date=TARGET, windows=all_windows())
        result = generator.generate(request, target_date=TARGET, windows=all_windows())
        assert result.canonical_key not in issued
        assert provider.call_count == 2

    def test_concurrent_requests_never_share_a_key(self, leader_history):
        """Parallel requests for one date return distinct combinations"""
        generator, _ = make_generator(leader_history)
        request = GenerationRequest(vivier_level=3, determinism_level=0)
        keys = []

        def worker():
            for _ in range(5):
                keys.append(generator.generate(request, target_date=TARGET, windows=all_windows()).canonical_key)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(keys) == 20
        assert len(set(keys)) == 20

    def test_unsold_pair_is_rejected(self, leader_history):
        """Tariff validation happens before any work"""
        history_provider = Mock(return_value=leader_history)
        generator = CombinationGenerator(history_provider, lambda d: set(),
                                         calibration_state=CalibrationState(enabled=False))
        with pytest.raises(InvalidRequest):
            generator.generate(GenerationRequest(target_numbers=10, target_stars=3), target_date=TARGET)
        history_provider.assert_not_called()

    def test_empty_history(self):
        """No history, no generation"""
        generator, _ = make_generator([])
        with pytest.raises(StatisticsUnavailable):
            generator.generate(GenerationRequest(), target_date=TARGET)

    def test_static_windows_when_calibration_disabled(self, leader_history):
        """Disabled calibration resolves the configured static windows"""
        generator, _ = make_generator(leader_history)
        result = generator.generate(GenerationRequest(), target_date=TARGET)
        assert result.windows[SignalFamily.HIGH] == WindowSpec.last_n_draws(600)
        assert result.windows[SignalFamily.TREND].recent_period == 40
        assert all(result.fallback.values())
