"""
Vivier - Tariff Grid
====================

EuroMillions multiple-entry price grid. A (numbers, stars) pair is valid
only when the grid prices it; the generator refuses anything else.
"""

from math import comb
from typing import Dict, Optional

from .exceptions import InvalidRequest


# Allowed star range per numbers count
ALLOWED_STARS: Dict[int, range] = {
    5: range(2, 13),
    6: range(2, 13),
    7: range(2, 7),
    8: range(2, 5),
    9: range(2, 4),
    10: range(2, 3),
}

# [numbers][stars] = price in euros
PRICE_GRID: Dict[int, Dict[int, float]] = {
    5: {2: 2.50, 3: 7.50, 4: 15, 5: 25, 6: 37.50, 7: 52.50, 8: 70, 9: 90, 10: 112.50, 11: 137.50, 12: 165},
    6: {2: 15, 3: 45, 4: 90, 5: 150, 6: 225, 7: 315, 8: 420, 9: 540, 10: 675, 11: 825, 12: 990},
    7: {2: 52.50, 3: 157.50, 4: 315, 5: 525, 6: 787.50},
    8: {2: 140, 3: 420, 4: 840},
    9: {2: 315, 3: 945},
    10: {2: 630},
}


def is_valid_pair(numbers_count: int, stars_count: int) -> bool:
    allowed = ALLOWED_STARS.get(numbers_count)
    return allowed is not None and stars_count in allowed


def resolve_tariff(numbers_count: int, stars_count: int) -> Optional[float]:
    """Price of a (numbers, stars) grid, or None when the pair is not sold"""
    if not is_valid_pair(numbers_count, stars_count):
        return None
    return PRICE_GRID.get(numbers_count, {}).get(stars_count)


def combinations_count(numbers_count: int, stars_count: int) -> int:
    """Simple grids covered by a multiple entry: C(n,5) * C(e,2)"""
    return comb(numbers_count, 5) * comb(stars_count, 2)


def require_tariff(numbers_count: int, stars_count: int) -> float:
    """Resolve the price or raise InvalidRequest"""
    price = resolve_tariff(numbers_count, stars_count)
    if price is None:
        raise InvalidRequest(
            f"No tariff for {numbers_count} numbers + {stars_count} stars",
            field="target",
        )
    return price
