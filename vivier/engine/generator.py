"""
Vivier - Combination Generator
==============================

End-to-end pipeline for one "generate" request:

1. Validate the request (tariff pair, knobs, priority order)
2. Resolve one window per signal family (dynamic calibration, or the
   static default where calibration is disabled or unresolved)
3. Compute candidate metrics and score both pools
4. Build the High basket (top of the score order) and the Dormant pool
   (top of the absence ranking), both sized by the vivier level
5. Inside the uniqueness guard: sample, compose, replace dormants, and
   retry until the canonical key is new for the target date

Persistence of the accepted combination is left to the caller.
"""

import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from ..config import VivierConfig
from ..exceptions import StatisticsUnavailable
from ..models import (
    Draw,
    GeneratedCombination,
    GenerationRequest,
    PoolKind,
    PoolStatistics,
    SignalFamily,
    SourceTag,
    WindowSpec,
)
from ..tariff import require_tariff
from .calibration import CalibrationState
from .composition import DormantReplacement, compose_by_category, replace_dormant
from .sampler import PoolSampler
from .scoring import ScoredCandidate, ScoringEngine
from .statistical_core import StatisticsEngine
from .uniqueness import IssuedKeyCache, IssuedProvider, UniquenessGuard


# vivier level 0..10 -> pool size
NUMBER_GRADUATIONS = (5, 6, 7, 9, 12, 16, 21, 27, 34, 42, 50)
STAR_GRADUATIONS = (2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12)

HistoryProvider = Callable[[], List[Draw]]


def pool_size(kind: PoolKind, vivier_level: int, target: int, override: Optional[int] = None) -> int:
    """Candidates kept in the basket: graduation (or override), never below the target"""
    if override is not None:
        size = int(override)
    else:
        graduations = NUMBER_GRADUATIONS if kind is PoolKind.NUMBERS else STAR_GRADUATIONS
        size = graduations[max(0, min(10, int(vivier_level)))]
    return max(min(size, kind.max_value), target)


@dataclass
class PoolPlan:
    """Scored inputs of one pool, fixed for every retry of a request"""
    kind: PoolKind
    target: int
    size: int
    basket: List[ScoredCandidate]
    dormant_pool: List[ScoredCandidate]
    absence_ranking: List[ScoredCandidate]


@dataclass
class GenerationResult:
    """An accepted combination plus everything needed to explain it"""
    combination: GeneratedCombination
    target_date: date
    selection_scores: Dict[PoolKind, Dict[int, float]]
    replacements: Dict[PoolKind, DormantReplacement]
    windows: Dict[SignalFamily, WindowSpec] = field(default_factory=dict)
    fallback: Dict[SignalFamily, bool] = field(default_factory=dict)
    pool_sizes: Dict[PoolKind, int] = field(default_factory=dict)
    attempts: int = 0

    @property
    def canonical_key(self) -> str:
        return self.combination.canonical_key


class CombinationGenerator:
    """
    Orchestrates statistics, scoring, sampling and uniqueness.

    Every stateful collaborator (calibration state, issued-key cache,
    random source) is injectable; one generator per session. Each request
    samples with its own child of the session random source.
    """

    def __init__(
        self,
        history_provider: HistoryProvider,
        issued_provider: IssuedProvider,
        config: Optional[VivierConfig] = None,
        calibration_state: Optional[CalibrationState] = None,
        rng: Optional[np.random.Generator] = None,
        statistics_engine: Optional[StatisticsEngine] = None,
    ):
        self.history_provider = history_provider
        self.config = config or VivierConfig()
        self.calibration_state = calibration_state or CalibrationState(enabled=self.config.calibration_enabled)
        self.rng = rng if rng is not None else np.random.default_rng()
        self._rng_lock = threading.Lock()
        self.statistics_engine = statistics_engine or StatisticsEngine()
        self.guard = UniquenessGuard(IssuedKeyCache(issued_provider), max_attempts=self.config.max_attempts)
        logger.info(f"[Generator] CombinationGenerator initialized (max_attempts={self.config.max_attempts})")

    def resolve_windows(
        self, history: List[Draw], windows: Optional[Dict[SignalFamily, WindowSpec]] = None
    ) -> Tuple[Dict[SignalFamily, WindowSpec], Dict[SignalFamily, bool]]:
        """Explicit windows win; missing families come from calibration or static defaults"""
        resolved, fallback = self.calibration_state.windows(history, self.config.static_windows())
        if windows:
            for family, spec in windows.items():
                resolved[family] = spec
                fallback[family] = False
        return resolved, fallback

    def _plan(self, request: GenerationRequest, kind: PoolKind, stats: PoolStatistics,
              scoring: ScoringEngine) -> PoolPlan:
        ordered = scoring.score_pool(stats)
        by_number = {c.number: c for c in ordered}
        override = request.pool_size_numbers if kind is PoolKind.NUMBERS else request.pool_size_stars
        size = pool_size(kind, request.vivier_level, request.target(kind), override)
        absence_ranking = [by_number[m.number] for m in stats.by_absence()]
        return PoolPlan(
            kind=kind,
            target=request.target(kind),
            size=size,
            basket=ordered[:size],
            dormant_pool=absence_ranking[:size],
            absence_ranking=absence_ranking,
        )

    def _request_sampler(self) -> PoolSampler:
        with self._rng_lock:
            child = self.rng.spawn(1)[0]
        return PoolSampler(child)

    def _select(
        self, request: GenerationRequest, plan: PoolPlan, sampler: PoolSampler
    ) -> Tuple[List[ScoredCandidate], Dict[int, SourceTag], DormantReplacement]:
        weights = request.category_weights(plan.kind)
        if weights is not None and not weights.is_zero:
            picked, sources = compose_by_category(
                plan.basket, plan.dormant_pool, weights, plan.target, request.determinism_level, sampler
            )
        else:
            picked = sampler.pick(plan.basket, plan.target, request.determinism_level)
            sources = {c.number: SourceTag.HIGH for c in picked}

        selection, replacement = replace_dormant(
            picked, plan.absence_ranking, request.dormant_level(plan.kind), plan.kind
        )
        for number in replacement.injected:
            sources[number] = SourceTag.DORMANT
        return selection, {c.number: sources[c.number] for c in selection}, replacement

    def _attempt(
        self, request: GenerationRequest, plans: Dict[PoolKind, PoolPlan], target_date: date, sampler: PoolSampler
    ) -> GenerationResult:
        selections, sources, replacements = {}, {}, {}
        for kind, plan in plans.items():
            selections[kind], sources[kind], replacements[kind] = self._select(request, plan, sampler)

        combination = GeneratedCombination(
            numbers=tuple(sorted(c.number for c in selections[PoolKind.NUMBERS])),
            stars=tuple(sorted(c.number for c in selections[PoolKind.STARS])),
            number_sources=sources[PoolKind.NUMBERS],
            star_sources=sources[PoolKind.STARS],
        )
        return GenerationResult(
            combination=combination,
            target_date=target_date,
            selection_scores={kind: {c.number: c.score for c in sel} for kind, sel in selections.items()},
            replacements=replacements,
            pool_sizes={kind: plan.size for kind, plan in plans.items()},
        )

    def generate(
        self,
        request: GenerationRequest,
        target_date: Optional[date] = None,
        windows: Optional[Dict[SignalFamily, WindowSpec]] = None,
    ) -> GenerationResult:
        """
        Generate one combination unique for the target date.

        Args:
            request: Validated generation request
            target_date: Draw date the combination is meant for (default: today)
            windows: Optional explicit window per family

        Returns:
            GenerationResult with the accepted combination

        Raises:
            InvalidRequest: Tariff pair unresolved
            StatisticsUnavailable: Empty history or empty window
            GenerationExhausted: No new combination within the attempt bound
        """
        require_tariff(request.target_numbers, request.target_stars)
        target_date = target_date or date.today()

        history = self.history_provider()
        if not history:
            logger.error("[Generator] No draw history available")
            raise StatisticsUnavailable("Draw history is empty")

        resolved, fallback = self.resolve_windows(history, windows)
        stats = self.statistics_engine.compute(history, resolved, reference_date=target_date)
        scoring = ScoringEngine(
            request.priority_order,
            request.influence_frequency,
            request.influence_surrepresentation,
            request.influence_trend,
        )
        plans = {kind: self._plan(request, kind, stats[kind], scoring) for kind in PoolKind}
        logger.info(
            f"[Generator] {request.target_numbers}+{request.target_stars} for {target_date}: "
            f"pools={plans[PoolKind.NUMBERS].size}/{plans[PoolKind.STARS].size}, "
            f"windows={ {f.value: w.describe() for f, w in resolved.items()} }"
        )

        context = self.guard.context(target_date, (plans[PoolKind.NUMBERS].size, plans[PoolKind.STARS].size))
        sampler = self._request_sampler()
        result, attempts = self.guard.run(context, lambda n: self._attempt(request, plans, target_date, sampler))
        result.windows = resolved
        result.fallback = fallback
        result.attempts = attempts
        logger.info(f"[Generator] Accepted {result.canonical_key} after {attempts} attempt(s)")
        return result
