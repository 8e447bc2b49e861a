"""Multiple-choice and matching question synthesis."""
from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence, Union

from .domain import (
    ContentFilter,
    QuestionStyle,
    QuestionType,
    SessionConfig,
    dedupe,
    facets,
    is_definition_like,
    usable_pairs,
)
from .errors import QuestionGenerationFailure
from .metrics import METRICS
from .models import MatchingPair, MatchingQuestion, MemoryItem, MultipleChoiceQuestion
from .selection import pick_weighted
from .validators import ValidationError, validate_question

logger = logging.getLogger(__name__)

Question = Union[MultipleChoiceQuestion, MatchingQuestion]


def _aligned_prompt(
    target: MemoryItem, others: Sequence[MemoryItem]
) -> Optional[tuple]:
    pairs = usable_pairs(target)
    question_text = target.key.strip()
    correct = pairs[0]
    if not question_text or question_text == correct:
        return None
    candidates: List[str] = []
    for other in others:
        other_pairs = usable_pairs(other)
        if other_pairs:
            candidates.append(other_pairs[0])
    return question_text, correct, candidates, {question_text, correct}


def _randomized_prompt(
    target: MemoryItem, others: Sequence[MemoryItem], rng: random.Random
) -> Optional[tuple]:
    target_facets = facets(target)
    # a single facet cannot serve as both prompt and answer
    if len(target_facets) < 2:
        return None
    question_text = rng.choice(target_facets)
    correct = rng.choice([facet for facet in target_facets if facet != question_text])
    candidates = [facet for other in others for facet in facets(other)]
    return question_text, correct, candidates, {question_text, correct}


def build_question(
    target: MemoryItem,
    pool: Sequence[MemoryItem],
    style: QuestionStyle,
    rng: random.Random,
    distractor_count: int = 3,
) -> Optional[MultipleChoiceQuestion]:
    """Build a multiple-choice question for ``target`` or ``None`` if ineligible."""

    if not usable_pairs(target):
        return None
    others = [item for item in pool if item.id != target.id]
    if style == QuestionStyle.RANDOMIZED:
        prompt = _randomized_prompt(target, others, rng)
    else:
        prompt = _aligned_prompt(target, others)
    if prompt is None:
        return None

    question_text, correct, candidates, excluded = prompt
    distractors = [candidate for candidate in dedupe(candidates) if candidate not in excluded]
    if len(distractors) < distractor_count:
        return None
    rng.shuffle(distractors)
    return MultipleChoiceQuestion(
        item=target,
        question_text=question_text,
        correct_answer_text=correct,
        distractors=distractors[:distractor_count],
    )


def matching_candidates(pool: Sequence[MemoryItem]) -> List[MemoryItem]:
    seen = set()
    eligible: List[MemoryItem] = []
    for item in pool:
        if item.id in seen or not item.key.strip() or not usable_pairs(item):
            continue
        if is_definition_like(item):
            continue
        seen.add(item.id)
        eligible.append(item)
    return eligible


def build_matching_question(
    pool: Sequence[MemoryItem],
    style: QuestionStyle,
    rng: random.Random,
    pair_count: int = 4,
) -> Optional[MatchingQuestion]:
    """Draw distinct items and fix the content of each side of the pairing.

    Column order is left to presentation; only which text sits on which
    side is decided here.
    """

    eligible = matching_candidates(pool)
    if len(eligible) < pair_count:
        return None
    pairs: List[MatchingPair] = []
    for item in rng.sample(eligible, pair_count):
        item_pairs = usable_pairs(item)
        if style == QuestionStyle.RANDOMIZED:
            answer = rng.choice(item_pairs)
        else:
            answer = item_pairs[0]
        key = item.key.strip()
        show_key_left = rng.random() > 0.5
        pairs.append(
            MatchingPair(
                id=item.id,
                left_content=key if show_key_left else answer,
                right_content=answer if show_key_left else key,
                item=item,
            )
        )
    return MatchingQuestion(pairs=pairs)


class QuestionGenerator:
    """Produces the question for a given global round from a candidate pool."""

    def __init__(
        self,
        style: QuestionStyle,
        rng: random.Random,
        config: Optional[SessionConfig] = None,
        content: ContentFilter = ContentFilter.MIX,
    ) -> None:
        self._style = style
        self._rng = rng
        self._config = config or SessionConfig()
        self._content = content

    def is_matching_round(self, round_index: int) -> bool:
        """Matching rounds belong to the mixed, randomized style only."""

        if self._style != QuestionStyle.RANDOMIZED or not self._config.matching_rounds:
            return False
        if self._content == ContentFilter.DEFINITION:
            return False
        return round_index % self._config.matching_interval == 0

    def next_question(self, pool: Sequence[MemoryItem], round_index: int) -> Question:
        """Return a validated question for the 1-based ``round_index``.

        Raises :class:`QuestionGenerationFailure` when every item of the pool
        fails to yield a question.
        """

        if self.is_matching_round(round_index):
            matching = build_matching_question(
                pool, self._style, self._rng, self._config.matching_pair_count
            )
            if matching is not None and self._accept(matching):
                METRICS.record_question(QuestionType.MATCHING.value)
                return matching
            logger.debug("Round %d falls back to multiple choice", round_index)

        remaining = list(pool)
        while remaining:
            target = pick_weighted(remaining, self._rng, self._config.weight_floor)
            question = build_question(
                target, pool, self._style, self._rng, self._config.distractor_count
            )
            if question is not None and self._accept(question):
                METRICS.record_question(QuestionType.MULTIPLE_CHOICE.value)
                return question
            remaining = [item for item in remaining if item.id != target.id]

        reason = "insufficient_distractors" if pool else "empty_pool"
        METRICS.record_generation_failure(reason)
        logger.warning(
            "No question could be generated for round %d from %d items", round_index, len(pool)
        )
        raise QuestionGenerationFailure(reason)

    def _accept(self, question: Question) -> bool:
        try:
            validate_question(
                question, self._config.distractor_count, self._config.matching_pair_count
            )
        except ValidationError as exc:
            logger.warning("Discarding generated question: %s", exc)
            return False
        return True


__all__ = [
    "Question",
    "QuestionGenerator",
    "build_matching_question",
    "build_question",
    "matching_candidates",
]
