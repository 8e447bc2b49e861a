"""Pool resolution and accuracy-weighted item selection."""
from __future__ import annotations

import logging
import random
from typing import Iterable, List, Optional, Sequence

from .domain import UNCATEGORIZED, ContentFilter, SessionConfig, is_definition_like
from .errors import InsufficientPoolError
from .models import FilterSpec, MemoryItem

logger = logging.getLogger(__name__)


def _matches_category(item: MemoryItem, category_ids: Optional[Sequence[str]]) -> bool:
    if category_ids is None:
        return True
    if item.category_id is None:
        return UNCATEGORIZED in category_ids
    return item.category_id in category_ids


def _matches_content(item: MemoryItem, content: ContentFilter) -> bool:
    if content == ContentFilter.WORD:
        return not is_definition_like(item)
    if content == ContentFilter.DEFINITION:
        return is_definition_like(item)
    return True


def resolve_pool(items: Iterable[MemoryItem], filter_spec: Optional[FilterSpec] = None) -> List[MemoryItem]:
    """Return the active items matching the filter, preserving input order.

    An explicit but empty category selection means nothing was selected and
    always yields an empty pool.
    """

    filter_spec = filter_spec or FilterSpec()
    category_ids = filter_spec.category_ids
    if category_ids is not None and not category_ids:
        return []
    return [
        item
        for item in items
        if item.is_active
        and _matches_category(item, category_ids)
        and _matches_content(item, filter_spec.content)
    ]


def ensure_pool_size(pool: Sequence[MemoryItem], minimum: int = SessionConfig.min_pool_size) -> None:
    if len(pool) < minimum:
        logger.info("Pool too small to start a session: %d < %d", len(pool), minimum)
        raise InsufficientPoolError(found=len(pool), required=minimum)


def compute_weight(item: MemoryItem, floor: float = SessionConfig.weight_floor) -> float:
    """Sampling weight favouring items answered poorly or never attempted."""

    return floor + (1 - item.stats.accuracy)


def pick_weighted(
    pool: Sequence[MemoryItem], rng: random.Random, floor: float = SessionConfig.weight_floor
) -> MemoryItem:
    """Draw one item with probability proportional to its weight."""

    if not pool:
        raise ValueError("Cannot draw from an empty pool")
    candidates = list(pool)
    # ties would otherwise always resolve to the earliest position
    rng.shuffle(candidates)
    cumulative: List[float] = []
    total = 0.0
    for item in candidates:
        total += compute_weight(item, floor)
        cumulative.append(total)
    pick = rng.random() * total
    for item, bound in zip(candidates, cumulative):
        if bound >= pick:
            return item
    return candidates[-1]


__all__ = [
    "compute_weight",
    "ensure_pool_size",
    "pick_weighted",
    "resolve_pool",
]
