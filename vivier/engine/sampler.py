"""
Vivier - Pool Sampler
=====================

Picks `count` items from an ordered basket under a determinism level L:
- L >= 9: the first `count` items (pole position)
- L <= 0.5: uniform shuffle
- otherwise: sequential weighted draw without replacement,
  weight(r) = exp(-r / T), T = (10 - L) * 0.5 + 0.2
"""

from typing import List, Optional, Sequence, TypeVar

import numpy as np


T = TypeVar("T")

DETERMINISTIC_LEVEL = 9
UNIFORM_LEVEL = 0.5


def temperature(determinism: float) -> float:
    return (10 - determinism) * 0.5 + 0.2


def position_weights(size: int, determinism: float) -> np.ndarray:
    """exp(-r / T) for basket positions r = 0..size-1"""
    return np.exp(-np.arange(size) / temperature(determinism))


class PoolSampler:
    """
    Draws from a basket using an injectable numpy Generator.

    A sampler instance should not be shared between concurrent generations.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def pick(self, basket: Sequence[T], count: int, determinism: float) -> List[T]:
        basket = list(basket)
        if count <= 0:
            return []
        if len(basket) <= count:
            return basket
        if determinism >= DETERMINISTIC_LEVEL:
            return basket[:count]
        if determinism <= UNIFORM_LEVEL:
            order = self.rng.permutation(len(basket))
            return [basket[i] for i in order[:count]]

        remaining = list(range(len(basket)))
        weights = position_weights(len(basket), determinism)
        picked = []
        for _ in range(count):
            w = weights[remaining]
            choice = int(self.rng.choice(len(remaining), p=w / w.sum()))
            picked.append(basket[remaining.pop(choice)])
        return picked
