"""
Vivier engine: statistics, calibration, scoring, sampling, composition,
uniqueness and the end-to-end generator.
"""

from .statistical_core import (
    FrequencyAnalyzer,
    AbsenceAnalyzer,
    TrendAnalyzer,
    StatisticsEngine
)

from .calibration import (
    WindowCalibrator,
    CalibrationResult,
    CalibrationState,
    FAMILY_PARAMS
)

from .scoring import ScoringEngine, ScoredCandidate
from .sampler import PoolSampler
from .composition import DormantReplacement, compose_by_category, replace_dormant
from .uniqueness import IssuedKeyCache, UniquenessGuard
from .generator import CombinationGenerator, GenerationResult

__all__ = [
    # Statistical Core
    'FrequencyAnalyzer',
    'AbsenceAnalyzer',
    'TrendAnalyzer',
    'StatisticsEngine',

    # Calibration
    'WindowCalibrator',
    'CalibrationResult',
    'CalibrationState',
    'FAMILY_PARAMS',

    # Selection
    'ScoringEngine',
    'ScoredCandidate',
    'PoolSampler',
    'DormantReplacement',
    'compose_by_category',
    'replace_dormant',

    # Uniqueness / pipeline
    'IssuedKeyCache',
    'UniquenessGuard',
    'CombinationGenerator',
    'GenerationResult',
]
