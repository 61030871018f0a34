"""
Vivier - Window Calibrator
==========================

Finds, per signal family, the smallest window whose ranking is stable,
then makes that value robust over time.

Stability tests (one per family method):
- rank_stability (High, Surrepresentation): Spearman rho and Top-K overlap
  between the ranking at N and at N + delta, numbers AND stars, confirmed
  on consecutive steps
- trend_concordance (Trend): identical rising/falling/stable labels when
  the recent period moves from R to R+5 to R+10
- coverage (Dormant): every number and star seen within the last N draws

Robustification: the same search runs on trailing sub-series (dropping the
most recent 150, 300, ... draws); the 20th/80th percentiles of those
results, widened by a margin, form a band the standard value is clamped to.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

import numpy as np
from loguru import logger
from scipy.stats import spearmanr

from ..exceptions import CalibrationUnresolved
from ..models import Draw, PoolKind, SignalFamily, WindowSpec
from .statistical_core import FALLING_RATIO, RISING_RATIO, surrepresentation_z


def round_to(value: float, quantum: int) -> int:
    """Nearest multiple of quantum, halves rounded up"""
    return int(math.floor(value / quantum + 0.5)) * quantum


@dataclass(frozen=True)
class Band:
    low: int
    high: int

    def clamp(self, value: int) -> int:
        return max(self.low, min(self.high, value))


@dataclass(frozen=True)
class BandRule:
    """How sub-series percentiles become a safety band"""
    margin: int
    quantum: int
    outward: bool  # floor the low end / ceil the high end, else round both
    clamp_low: int
    clamp_high: int
    default: Band

    def _snap(self, value: float, up: bool) -> int:
        q = self.quantum
        if not self.outward:
            return round_to(value, q)
        return int(math.ceil(value / q)) * q if up else int(math.floor(value / q)) * q

    def band(self, values: List[int]) -> Band:
        if len(values) < 3:
            return self.default
        q20 = int(np.percentile(values, 20, method="lower"))
        q80 = int(np.percentile(values, 80, method="lower"))
        low = max(self.clamp_low, min(self.clamp_high, self._snap(q20 - self.margin, up=False)))
        high = max(self.clamp_low, min(self.clamp_high, self._snap(q80 + self.margin, up=True)))
        if low >= high:
            return self.default
        return Band(low, high)


@dataclass(frozen=True)
class CalibrationParams:
    """Per-family search parameters; one record drives one generic search"""
    family: SignalFamily
    method: str
    min_history: int
    start: int
    step: int
    stop: Optional[int] = None
    delta: int = 50
    top_k_numbers: int = 12
    top_k_stars: int = 4
    rho_threshold: float = 0.0
    overlap_threshold: float = 0.0
    confirmations: int = 1
    concordance_threshold: float = 0.0
    recent_start: int = 15
    recent_step: int = 5
    recent_cap: int = 80
    series_step: int = 150
    min_tail: int = 400
    band_rule: Optional[BandRule] = None
    recent_band_rule: Optional[BandRule] = None


FAMILY_PARAMS: Dict[SignalFamily, CalibrationParams] = {
    SignalFamily.HIGH: CalibrationParams(
        family=SignalFamily.HIGH,
        method="rank_stability",
        min_history=800,
        start=50,
        step=10,
        rho_threshold=0.95,
        overlap_threshold=0.75,
        confirmations=3,
        min_tail=600,
        band_rule=BandRule(margin=50, quantum=10, outward=True, clamp_low=200, clamp_high=5000,
                           default=Band(400, 800)),
    ),
    SignalFamily.SURREPRESENTATION: CalibrationParams(
        family=SignalFamily.SURREPRESENTATION,
        method="rank_stability",
        min_history=500,
        start=50,
        step=10,
        stop=450,
        rho_threshold=0.90,
        overlap_threshold=0.70,
        confirmations=2,
        band_rule=BandRule(margin=30, quantum=10, outward=True, clamp_low=50, clamp_high=450,
                           default=Band(80, 450)),
    ),
    SignalFamily.TREND: CalibrationParams(
        family=SignalFamily.TREND,
        method="trend_concordance",
        min_history=450,
        start=50,
        step=10,
        stop=200,
        concordance_threshold=0.82,
        band_rule=BandRule(margin=10, quantum=10, outward=True, clamp_low=50, clamp_high=200,
                           default=Band(80, 200)),
        recent_band_rule=BandRule(margin=5, quantum=5, outward=False, clamp_low=15, clamp_high=80,
                                  default=Band(15, 80)),
    ),
    SignalFamily.DORMANT: CalibrationParams(
        family=SignalFamily.DORMANT,
        method="coverage",
        min_history=200,
        start=20,
        step=5,
        stop=200,
        band_rule=BandRule(margin=10, quantum=10, outward=False, clamp_low=20, clamp_high=500,
                           default=Band(40, 120)),
    ),
}


@dataclass(frozen=True)
class CalibrationPoint:
    """A calibrated window (and, for Trend, its recent period)"""
    window: int
    recent: Optional[int] = None


@dataclass
class CalibrationResult:
    family: SignalFamily
    standard: CalibrationPoint
    dynamic: CalibrationPoint
    band: Band
    recent_band: Optional[Band] = None
    series: List[Optional[CalibrationPoint]] = field(default_factory=list)
    history_size: int = 0

    def window_spec(self) -> WindowSpec:
        return WindowSpec.last_n_draws(self.dynamic.window, recent_period=self.dynamic.recent)


def cumulative_counts(history: List[Draw], kind: PoolKind, limit: Optional[int] = None) -> np.ndarray:
    """Row n holds occurrence counts over the first n draws (shape: (total+1, max))"""
    draws = history if limit is None else history[:limit]
    indicator = np.zeros((len(draws), kind.max_value), dtype=int)
    for i, draw in enumerate(draws):
        for value in draw.values(kind):
            indicator[i, value - 1] = 1
    cum = np.zeros((len(draws) + 1, kind.max_value), dtype=int)
    np.cumsum(indicator, axis=0, out=cum[1:])
    return cum


def strict_order(scores: np.ndarray) -> np.ndarray:
    """Candidate indices by score desc, ties by candidate number asc"""
    return np.lexsort((np.arange(len(scores)), -scores))


def strict_ranks(scores: np.ndarray) -> np.ndarray:
    ranks = np.empty(len(scores), dtype=int)
    ranks[strict_order(scores)] = np.arange(1, len(scores) + 1)
    return ranks


def rank_agreement(a: np.ndarray, b: np.ndarray, top_k: int) -> Tuple[float, float]:
    """Spearman rho over strict ranks and Top-K overlap fraction"""
    rho = float(spearmanr(strict_ranks(a), strict_ranks(b))[0])
    top_a = set(strict_order(a)[:top_k].tolist())
    top_b = set(strict_order(b)[:top_k].tolist())
    return rho, len(top_a & top_b) / top_k


def trend_directions(cum: np.ndarray, window: int, recent: int) -> np.ndarray:
    """Vectorized labels (+1 rising, -1 falling, 0 stable) from cumulative counts"""
    expected = cum[window] / window * recent
    actual = cum[recent]
    ratio = np.divide(actual, expected, out=np.zeros(len(expected)), where=expected > 0)
    return np.where(ratio > RISING_RATIO, 1, np.where(ratio < FALLING_RATIO, -1, 0))


class WindowCalibrator:
    """
    Parameterized stability search shared by the four signal families.

    Each family's thresholds live in FAMILY_PARAMS; this class only knows
    the three stability methods and the robustification procedure.
    """

    def __init__(self, params: Optional[Dict[SignalFamily, CalibrationParams]] = None):
        self.params = params or FAMILY_PARAMS
        logger.info(f"WindowCalibrator initialized ({len(self.params)} families)")

    # --- standard search -------------------------------------------------

    def _rank_scores(self, params: CalibrationParams, cum: np.ndarray, n: int, kind: PoolKind) -> np.ndarray:
        counts = cum[n]
        if params.family is SignalFamily.SURREPRESENTATION:
            return surrepresentation_z(counts, n, kind.p0)
        return counts.astype(float)

    def _search_rank_stability(self, history: List[Draw], params: CalibrationParams) -> Optional[CalibrationPoint]:
        total = len(history)
        n_max = total - params.delta
        if params.stop is not None:
            n_max = min(n_max, params.stop)
        if n_max < params.start:
            return None

        cums = {kind: cumulative_counts(history, kind) for kind in PoolKind}
        top_k = {PoolKind.NUMBERS: params.top_k_numbers, PoolKind.STARS: params.top_k_stars}
        ok_cache: Dict[int, bool] = {}

        def ok_at(n: int) -> bool:
            if n > n_max:
                return False
            if n not in ok_cache:
                ok = True
                for kind in PoolKind:
                    a = self._rank_scores(params, cums[kind], n, kind)
                    b = self._rank_scores(params, cums[kind], n + params.delta, kind)
                    rho, overlap = rank_agreement(a, b, top_k[kind])
                    if rho < params.rho_threshold or overlap < params.overlap_threshold:
                        ok = False
                        break
                ok_cache[n] = ok
            return ok_cache[n]

        for n in range(params.start, n_max + 1, params.step):
            if all(ok_at(n + j * params.step) for j in range(params.confirmations)):
                return CalibrationPoint(window=n)
        return None

    def _search_trend_concordance(self, history: List[Draw], params: CalibrationParams) -> Optional[CalibrationPoint]:
        total = len(history)
        limit = min(params.stop or total, total)
        cums = {kind: cumulative_counts(history, kind, limit=limit) for kind in PoolKind}

        w = params.start
        while w <= params.stop and w <= total - 20:
            r_max = min(params.recent_cap, w // 2)
            r = params.recent_start
            while r + 2 * params.recent_step <= r_max and r + 2 * params.recent_step <= w:
                concordances = []
                for kind in PoolKind:
                    labels = [trend_directions(cums[kind], w, r + j * params.recent_step) for j in range(3)]
                    concordances.append(float(np.mean(labels[0] == labels[1])))
                    concordances.append(float(np.mean(labels[1] == labels[2])))
                if min(concordances) >= params.concordance_threshold:
                    return CalibrationPoint(window=w, recent=r + params.recent_step)
                r += params.recent_step
            w += params.step
        return None

    def _search_coverage(self, history: List[Draw], params: CalibrationParams) -> Optional[CalibrationPoint]:
        need = 0
        for kind in PoolKind:
            seen = np.full(kind.max_value, -1)
            for idx, draw in enumerate(history[: params.stop]):
                for value in draw.values(kind):
                    if seen[value - 1] < 0:
                        seen[value - 1] = idx
            if (seen < 0).any():
                return None
            need = max(need, int(seen.max()) + 1)

        for n in range(params.start, params.stop + 1, params.step):
            if n >= need:
                return CalibrationPoint(window=n)
        return None

    def search(self, history: List[Draw], family: SignalFamily) -> Optional[CalibrationPoint]:
        """First window (scanning small to large) meeting the family's criterion, or None"""
        params = self.params[family]
        if params.method == "rank_stability":
            return self._search_rank_stability(history, params)
        if params.method == "trend_concordance":
            return self._search_trend_concordance(history, params)
        if params.method == "coverage":
            return self._search_coverage(history, params)
        raise ValueError(f"Unknown calibration method: {params.method}")

    # --- robustification ---------------------------------------------------

    def sub_series(self, history: List[Draw], family: SignalFamily) -> List[Optional[CalibrationPoint]]:
        """Standard search on trailing sub-histories (most recent draws dropped)"""
        params = self.params[family]
        points = []
        end = 0
        while end + params.min_tail <= len(history):
            points.append(self.search(history[end:], family))
            end += params.series_step
        return points

    def calibrate(self, history: List[Draw], family: SignalFamily) -> CalibrationResult:
        """
        Compute the dynamic window for one signal family.

        Args:
            history: Draws ordered most recent first
            family: Signal family to calibrate

        Returns:
            CalibrationResult holding the standard, band and dynamic values

        Raises:
            CalibrationUnresolved: If the history is too short or no window
                satisfies the family's criterion within the search bound
        """
        params = self.params[family]
        if len(history) < params.min_history:
            raise CalibrationUnresolved(
                f"{family.value}: history of {len(history)} draws is below the {params.min_history} minimum",
                family=family.value,
            )

        standard = self.search(history, family)
        if standard is None:
            raise CalibrationUnresolved(f"{family.value}: no stable window found", family=family.value)

        series = self.sub_series(history, family)
        found = [p for p in series if p is not None]
        band = params.band_rule.band([p.window for p in found])
        window = band.clamp(round_to(standard.window, params.band_rule.quantum))

        recent_band = None
        recent = None
        if params.recent_band_rule is not None:
            recent_band = params.recent_band_rule.band([p.recent for p in found if p.recent is not None])
            recent = recent_band.clamp(round_to(standard.recent, params.recent_band_rule.quantum))

        result = CalibrationResult(
            family=family,
            standard=standard,
            dynamic=CalibrationPoint(window=window, recent=recent),
            band=band,
            recent_band=recent_band,
            series=series,
            history_size=len(history),
        )
        logger.info(
            f"[Calibration] {family.value}: standard={standard.window}"
            + (f"/R={standard.recent}" if standard.recent else "")
            + f", band=[{band.low}, {band.high}], dynamic={window}"
            + (f"/R={recent}" if recent else "")
            + f" ({len(found)}/{len(series)} sub-series resolved)"
        )
        return result


HistoryKey = Tuple[int, Optional[date]]


class CalibrationState:
    """
    Injectable holder of the dynamic windows.

    Results are cached per history (length + latest draw date) so the
    calibration reruns only when the history grows.
    """

    def __init__(self, calibrator: Optional[WindowCalibrator] = None, enabled: bool = True):
        self.calibrator = calibrator or WindowCalibrator()
        self.enabled = enabled
        self._key: Optional[HistoryKey] = None
        self._results: Dict[SignalFamily, Optional[CalibrationResult]] = {}

    @staticmethod
    def _history_key(history: List[Draw]) -> HistoryKey:
        return (len(history), history[0].draw_date if history else None)

    def results(self, history: List[Draw]) -> Dict[SignalFamily, Optional[CalibrationResult]]:
        """Calibration per family; None where unresolved"""
        key = self._history_key(history)
        if key != self._key:
            results: Dict[SignalFamily, Optional[CalibrationResult]] = {}
            for family in SignalFamily:
                try:
                    results[family] = self.calibrator.calibrate(history, family)
                except CalibrationUnresolved as e:
                    logger.warning(f"[Calibration] {e}; static default will be used")
                    results[family] = None
            self._results = results
            self._key = key
        return self._results

    def windows(
        self, history: List[Draw], static_defaults: Dict[SignalFamily, WindowSpec]
    ) -> Tuple[Dict[SignalFamily, WindowSpec], Dict[SignalFamily, bool]]:
        """
        Dynamic window per family, or the static default where calibration
        is disabled or unresolved.

        Returns:
            (windows, fallback flags)
        """
        if not self.enabled:
            return dict(static_defaults), {family: True for family in SignalFamily}

        results = self.results(history)
        windows, fallback = {}, {}
        for family in SignalFamily:
            result = results.get(family)
            if result is None:
                windows[family] = static_defaults[family]
                fallback[family] = True
            else:
                windows[family] = result.window_spec()
                fallback[family] = False
        return windows, fallback
