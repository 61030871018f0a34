"""
Vivier - Composition
====================

Two post-scoring steps applied per pool (numbers, stars):

- compose_by_category: explicit High / Dormant counts, trimmed to the
  target (Dormant first), each drawn from its own basket, then topped up
  from the combined basket
- replace_dormant: swap the k lowest-scored picks for the longest-absent
  candidates, k = round(total * level / 10)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from loguru import logger

from ..models import CategoryWeights, PoolKind, SourceTag
from .sampler import PoolSampler
from .scoring import ScoredCandidate
from .statistical_core import round_half_up


def _excluding(basket: Sequence[ScoredCandidate], numbers) -> List[ScoredCandidate]:
    return [c for c in basket if c.number not in numbers]


def category_counts(weights: CategoryWeights, target: int) -> Dict[SourceTag, int]:
    """Floor each category's request, then decrement Dormant before High until the sum fits"""
    counts = {SourceTag.HIGH: max(0, int(weights.high)), SourceTag.DORMANT: max(0, int(weights.dormant))}
    for tag in (SourceTag.DORMANT, SourceTag.HIGH):
        while sum(counts.values()) > target and counts[tag] > 0:
            counts[tag] -= 1
    return counts


def combined_basket(high: Sequence[ScoredCandidate], dormant: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
    """High basket followed by dormant candidates not already in it"""
    seen = {c.number for c in high}
    return list(high) + [c for c in dormant if c.number not in seen]


def compose_by_category(
    high_basket: Sequence[ScoredCandidate],
    dormant_basket: Sequence[ScoredCandidate],
    weights: CategoryWeights,
    target: int,
    determinism: float,
    sampler: PoolSampler,
) -> Tuple[List[ScoredCandidate], Dict[int, SourceTag]]:
    """
    Draw a selection with explicit per-category counts.

    Args:
        high_basket: Scored basket ordered best first
        dormant_basket: Dormant pool ordered by absence
        weights: Requested High / Dormant counts
        target: Total number of picks
        determinism: Sampler level 0..10
        sampler: Pool sampler

    Returns:
        (up to `target` distinct candidates, category each pick was drawn from)
    """
    counts = category_counts(weights, target)
    picked: List[ScoredCandidate] = []
    sources: Dict[int, SourceTag] = {}

    for tag, basket in ((SourceTag.HIGH, high_basket), (SourceTag.DORMANT, dormant_basket)):
        share = sampler.pick(_excluding(basket, sources), counts[tag], determinism)
        picked.extend(share)
        sources.update((c.number, tag) for c in share)

    missing = target - len(picked)
    if missing > 0:
        high_numbers = {c.number for c in high_basket}
        rest = sampler.pick(_excluding(combined_basket(high_basket, dormant_basket), sources), missing, determinism)
        picked.extend(rest)
        sources.update(
            (c.number, SourceTag.HIGH if c.number in high_numbers else SourceTag.DORMANT) for c in rest
        )

    return picked, sources


@dataclass
class DormantReplacement:
    """What the dormant step removed and injected for one pool"""
    kind: PoolKind
    level: int
    removed: List[int] = field(default_factory=list)
    injected: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {"kind": self.kind.value, "level": self.level, "removed": self.removed, "injected": self.injected}


def replacement_count(total: int, level: int) -> int:
    if level <= 0 or total <= 0:
        return 0
    return min(total, max(1, round_half_up(total * level / 10)))


def replace_dormant(
    selected: Sequence[ScoredCandidate],
    absence_ranking: Sequence[ScoredCandidate],
    level: int,
    kind: PoolKind,
) -> Tuple[List[ScoredCandidate], DormantReplacement]:
    """
    Replace the lowest-scored picks with the longest-absent candidates.

    The selection keeps its size: when fewer injectable candidates exist
    than k, only that many picks are removed.

    Args:
        selected: Current picks
        absence_ranking: All candidates of the pool, longest absence first
        level: Dormant level 0..10
        kind: Pool being processed

    Returns:
        (new selection, replacement record)
    """
    record = DormantReplacement(kind=kind, level=level)
    k = replacement_count(len(selected), level)
    if k == 0:
        return list(selected), record

    present = {c.number for c in selected}
    injectable = [c for c in absence_ranking if c.number not in present]
    k = min(k, len(injectable))

    # lowest selection score first; ties drop the later-picked candidate
    by_score = sorted(enumerate(selected), key=lambda item: (item[1].score, -item[0]))
    removed = {c.number for _, c in by_score[:k]}
    kept = [c for c in selected if c.number not in removed]
    injected = injectable[:k]

    record.removed = sorted(removed)
    record.injected = [c.number for c in injected]
    logger.debug(f"Dormant replacement ({kind.value}, level={level}): -{record.removed} +{record.injected}")
    return kept + injected, record
