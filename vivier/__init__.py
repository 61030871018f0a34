"""
Vivier - EuroMillions Statistical Pool Engine
=============================================

Builds weighted candidate pools from the draw history and generates
combinations from them:
- Statistics engine (frequency, absence, trend, surrepresentation)
- Window calibration per signal family
- Priority-ordered scoring and determinism-controlled sampling
- Category composition and dormant replacement
- Per-date uniqueness of generated combinations
"""

__version__ = "1.0.0"

from .exceptions import (
    VivierError,
    InvalidRequest,
    StatisticsUnavailable,
    CalibrationUnresolved,
    GenerationExhausted,
    IssuedKeysUnavailable
)

from .models import (
    Draw,
    WindowSpec,
    SignalFamily,
    Criterion,
    PriorityOrder,
    CategoryWeights,
    GenerationRequest,
    GeneratedCombination,
    canonical_key
)

__all__ = [
    # Errors
    'VivierError',
    'InvalidRequest',
    'StatisticsUnavailable',
    'CalibrationUnresolved',
    'GenerationExhausted',
    'IssuedKeysUnavailable',

    # Model
    'Draw',
    'WindowSpec',
    'SignalFamily',
    'Criterion',
    'PriorityOrder',
    'CategoryWeights',
    'GenerationRequest',
    'GeneratedCombination',
    'canonical_key',
]
