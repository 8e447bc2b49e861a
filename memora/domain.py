"""Domain enums, tunables and item helpers shared across services."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Set

if TYPE_CHECKING:  # pragma: no cover
    from .models import MemoryItem


DEFINITION_WORD_THRESHOLD = 4
UNCATEGORIZED = "__uncategorized__"


class GameState(str, Enum):
    PREPARING = "PREPARING"
    PLAYING = "PLAYING"
    FEEDBACK = "FEEDBACK"
    FINISHED = "FINISHED"


class SessionMode(str, Enum):
    NORMAL = "normal"
    INFINITE = "infinite"


class QuestionStyle(str, Enum):
    """How prompt and answer are chosen for a multiple-choice question."""

    ALIGNED = "aligned"
    RANDOMIZED = "randomized"


class ContentFilter(str, Enum):
    """Coarse content filter kept from the WORD/DEFINITION item types."""

    MIX = "MIX"
    WORD = "WORD"
    DEFINITION = "DEFINITION"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    MATCHING = "MATCHING"


@dataclass
class SessionConfig:
    """Tunable configuration covering session setup and question synthesis."""

    min_pool_size: int = 4
    distractor_count: int = 3
    matching_interval: int = 4
    matching_pair_count: int = 4
    matching_rounds: bool = True
    weight_floor: float = 0.4
    advance_cooldown_seconds: float = 0.5


@dataclass
class MatchingProgress:
    """Tracks which pair ids of a matching round have been connected."""

    pair_ids: List[str]
    matched: Set[str] = field(default_factory=set)
    mismatches: int = 0

    def register(self, left_id: str, right_id: str) -> Optional[bool]:
        """Record an attempt, returning ``None`` when it must be ignored."""

        if left_id in self.matched or right_id in self.matched:
            return None
        if left_id not in self.pair_ids or right_id not in self.pair_ids:
            return None
        if left_id == right_id:
            self.matched.add(left_id)
            return True
        self.mismatches += 1
        return False

    @property
    def is_complete(self) -> bool:
        return bool(self.pair_ids) and self.matched.issuperset(self.pair_ids)


def usable_pairs(item: "MemoryItem") -> List[str]:
    """Return the item's pairs with blank entries dropped."""

    return [pair.strip() for pair in item.pairs if pair and pair.strip()]


def facets(item: "MemoryItem") -> List[str]:
    """Key plus usable pairs, deduplicated in order."""

    values: List[str] = []
    for candidate in [item.key.strip(), *usable_pairs(item)]:
        if candidate and candidate not in values:
            values.append(candidate)
    return values


def is_definition_like(item: "MemoryItem") -> bool:
    pairs = usable_pairs(item)
    return len(pairs) == 1 and len(pairs[0].split()) > DEFINITION_WORD_THRESHOLD


def dedupe(values: Sequence[str]) -> List[str]:
    unique: List[str] = []
    for value in values:
        if value not in unique:
            unique.append(value)
    return unique


__all__ = [
    "ContentFilter",
    "DEFINITION_WORD_THRESHOLD",
    "GameState",
    "MatchingProgress",
    "QuestionStyle",
    "QuestionType",
    "SessionConfig",
    "SessionMode",
    "UNCATEGORIZED",
    "dedupe",
    "facets",
    "is_definition_like",
    "usable_pairs",
]
