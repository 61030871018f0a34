"""
Vivier - HTTP API
=================

FastAPI router exposing the generator:
- POST /generate: one unique combination for a target date
- GET /calibration: dynamic windows per signal family
- GET /tariff: price and combination count of a numbers/stars pair
"""

import threading
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from . import database
from .config import load_config
from .engine.calibration import CalibrationState
from .engine.generator import CombinationGenerator
from .exceptions import GenerationExhausted, InvalidRequest, IssuedKeysUnavailable, StatisticsUnavailable
from .models import CategoryWeights, GenerationRequest, SignalFamily, WindowSpec, WindowUnit
from .tariff import combinations_count, resolve_tariff


# Pydantic models
class CategoryWeightsModel(BaseModel):
    high: float = Field(default=0, ge=0, description="Picks requested from the High basket")
    dormant: float = Field(default=0, ge=0, description="Picks requested from the Dormant pool")


class WindowModel(BaseModel):
    type: str = Field(..., description="all | last_n_draws | last_year | custom")
    value: Optional[int] = None
    unit: Optional[WindowUnit] = None
    recent_period: Optional[int] = Field(default=None, description="Trend only: recent period R")

    def to_spec(self) -> WindowSpec:
        if self.type == "all":
            return WindowSpec.all(self.recent_period)
        if self.type == "last_year":
            return WindowSpec.last_year(self.recent_period)
        if self.type == "last_n_draws" and self.value:
            return WindowSpec.last_n_draws(self.value, self.recent_period)
        if self.type == "custom" and self.value and self.unit:
            return WindowSpec.custom(self.value, self.unit, self.recent_period)
        raise InvalidRequest(f"Invalid window: {self.model_dump()}", field="windows")


class GenerateRequest(BaseModel):
    target_date: Optional[date] = Field(default=None, description="Draw the combination is meant for")
    target_numbers: int = Field(default=5, description="Numbers in the grid (5..10)")
    target_stars: int = Field(default=2, description="Stars in the grid (2..12)")
    influence_frequency: float = Field(default=10, ge=0, le=10)
    influence_surrepresentation: float = Field(default=0, ge=0, le=10)
    influence_trend: float = Field(default=0, ge=0, le=10)
    vivier_level: Optional[int] = Field(default=None, ge=0, le=10)
    determinism_level: float = Field(default=10, ge=0, le=10)
    dormant_numbers_level: int = Field(default=0, ge=0, le=10)
    dormant_stars_level: int = Field(default=0, ge=0, le=10)
    number_weights: Optional[CategoryWeightsModel] = None
    star_weights: Optional[CategoryWeightsModel] = None
    priority_order: List[str] = Field(default_factory=lambda: ["frequency", "surrepresentation", "trend"])
    pool_size_numbers: Optional[int] = Field(default=None, ge=1, le=50)
    pool_size_stars: Optional[int] = Field(default=None, ge=1, le=12)
    windows: Optional[Dict[SignalFamily, WindowModel]] = None
    persist: bool = Field(default=True, description="Record the combination as issued for the target date")
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "target_date": "2026-10-20",
                "target_numbers": 5,
                "target_stars": 2,
                "influence_frequency": 10,
                "influence_surrepresentation": 5,
                "influence_trend": 3,
                "vivier_level": 6,
                "determinism_level": 7,
                "dormant_numbers_level": 2,
                "priority_order": ["frequency", "trend", "surrepresentation"],
            }
        }
    )

    def to_request(self, default_vivier_level: int) -> GenerationRequest:
        def weights(model: Optional[CategoryWeightsModel]) -> Optional[CategoryWeights]:
            return CategoryWeights(high=model.high, dormant=model.dormant) if model else None

        return GenerationRequest(
            target_numbers=self.target_numbers,
            target_stars=self.target_stars,
            influence_frequency=self.influence_frequency,
            influence_surrepresentation=self.influence_surrepresentation,
            influence_trend=self.influence_trend,
            vivier_level=default_vivier_level if self.vivier_level is None else self.vivier_level,
            determinism_level=self.determinism_level,
            dormant_numbers_level=self.dormant_numbers_level,
            dormant_stars_level=self.dormant_stars_level,
            number_weights=weights(self.number_weights),
            star_weights=weights(self.star_weights),
            priority_order=self.priority_order,
            pool_size_numbers=self.pool_size_numbers,
            pool_size_stars=self.pool_size_stars,
        )


class ReplacementModel(BaseModel):
    level: int
    removed: List[int]
    injected: List[int]


class GenerateResponse(BaseModel):
    numbers: List[int]
    stars: List[int]
    canonical_key: str
    target_date: date
    sources: Dict[str, Dict[int, str]]
    selection_scores: Dict[str, Dict[int, float]]
    windows: Dict[str, str]
    calibration_fallback: Dict[str, bool]
    pool_sizes: Dict[str, int]
    replacements: Dict[str, ReplacementModel]
    attempts: int
    persisted: bool


class FamilyCalibration(BaseModel):
    window: str
    fallback: bool
    standard: Optional[int] = None
    standard_recent: Optional[int] = None
    band: Optional[List[int]] = None
    recent_band: Optional[List[int]] = None


class CalibrationResponse(BaseModel):
    total_draws: int
    enabled: bool
    families: Dict[str, FamilyCalibration]


class TariffResponse(BaseModel):
    numbers: int
    stars: int
    price: float
    combinations: int


# Router for the vivier engine
vivier_router = APIRouter(prefix="/api/v1/vivier", tags=["Vivier"])

_generator: Optional[CombinationGenerator] = None
_generator_lock = threading.Lock()


def get_generator() -> CombinationGenerator:
    """Process-wide generator backed by the SQLite providers"""
    global _generator
    with _generator_lock:
        if _generator is None:
            config = load_config()
            _generator = CombinationGenerator(
                history_provider=database.get_history,
                issued_provider=database.get_issued_combinations,
                config=config,
                calibration_state=CalibrationState(enabled=config.calibration_enabled),
            )
    return _generator


@vivier_router.post(
    "/generate",
    response_model=GenerateResponse,
    summary="Generate one unique combination",
    description="Scores both pools, samples under the determinism level and retries until the combination is new for the target date.",
)
def generate_combination(body: GenerateRequest, generator: CombinationGenerator = Depends(get_generator)) -> GenerateResponse:
    try:
        request = body.to_request(generator.config.default_vivier_level)
        windows = {family: w.to_spec() for family, w in body.windows.items()} if body.windows else None
        result = generator.generate(request, target_date=body.target_date, windows=windows)
    except InvalidRequest as e:
        logger.warning(f"Invalid generation request: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except StatisticsUnavailable as e:
        logger.error(f"Statistics unavailable: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except IssuedKeysUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except GenerationExhausted as e:
        raise HTTPException(status_code=409, detail=str(e))

    persisted = False
    if body.persist:
        persisted = database.persist_combination(result.combination, result.target_date)

    combination = result.combination
    return GenerateResponse(
        numbers=list(combination.numbers),
        stars=list(combination.stars),
        canonical_key=combination.canonical_key,
        target_date=result.target_date,
        sources=combination.source_tags,
        selection_scores={kind.value: scores for kind, scores in result.selection_scores.items()},
        windows={family.value: spec.describe() for family, spec in result.windows.items()},
        calibration_fallback={family.value: flag for family, flag in result.fallback.items()},
        pool_sizes={kind.value: size for kind, size in result.pool_sizes.items()},
        replacements={
            kind.value: ReplacementModel(level=r.level, removed=r.removed, injected=r.injected)
            for kind, r in result.replacements.items()
        },
        attempts=result.attempts,
        persisted=persisted,
    )


@vivier_router.get("/calibration", response_model=CalibrationResponse, summary="Dynamic windows per signal family")
def get_calibration(generator: CombinationGenerator = Depends(get_generator)) -> CalibrationResponse:
    history = generator.history_provider()
    if not history:
        raise HTTPException(status_code=503, detail="No historical data available for calibration")

    state = generator.calibration_state
    windows, fallback = state.windows(history, generator.config.static_windows())
    results = state.results(history) if state.enabled else {}

    families = {}
    for family in SignalFamily:
        result = results.get(family)
        families[family.value] = FamilyCalibration(
            window=windows[family].describe(),
            fallback=fallback[family],
            standard=result.standard.window if result else None,
            standard_recent=result.standard.recent if result else None,
            band=[result.band.low, result.band.high] if result else None,
            recent_band=[result.recent_band.low, result.recent_band.high] if result and result.recent_band else None,
        )
    return CalibrationResponse(total_draws=len(history), enabled=state.enabled, families=families)


@vivier_router.get("/tariff", response_model=TariffResponse, summary="Price of a numbers/stars pair")
def get_tariff(numbers: int = Query(..., ge=1), stars: int = Query(..., ge=1)) -> TariffResponse:
    price = resolve_tariff(numbers, stars)
    if price is None:
        raise HTTPException(status_code=422, detail=f"No tariff for {numbers} numbers and {stars} stars")
    return TariffResponse(numbers=numbers, stars=stars, price=price, combinations=combinations_count(numbers, stars))
