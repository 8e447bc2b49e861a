"""Validation utilities for generated questions prior to queueing."""
from __future__ import annotations

from typing import Union

from .models import MatchingQuestion, MultipleChoiceQuestion


class ValidationError(ValueError):
    """Raised when a generated question fails structural validation."""


def _assert_text(value: str, context: str) -> None:
    if not value or not value.strip():
        raise ValidationError(f"{context} must be non-empty")


def validate_multiple_choice(question: MultipleChoiceQuestion, distractor_count: int = 3) -> None:
    """Validate prompt, answer and distractors of a multiple-choice question."""

    _assert_text(question.question_text, "Question text")
    _assert_text(question.correct_answer_text, "Correct answer")
    if question.question_text == question.correct_answer_text:
        raise ValidationError("Question text and correct answer must differ")

    distractors = question.distractors
    if len(distractors) != distractor_count:
        raise ValidationError(
            f"Expected {distractor_count} distractors, got {len(distractors)}"
        )
    for distractor in distractors:
        _assert_text(distractor, "Distractors")
    if len(set(distractors)) != len(distractors):
        raise ValidationError("Distractors must be unique")
    if question.correct_answer_text in distractors:
        raise ValidationError("Distractors must not repeat the correct answer")
    if question.question_text in distractors:
        raise ValidationError("Distractors must not repeat the question text")


def validate_matching(question: MatchingQuestion, pair_count: int = 4) -> None:
    """Validate that a matching round has the expected distinct pairs."""

    if len(question.pairs) != pair_count:
        raise ValidationError(f"Expected {pair_count} matching pairs, got {len(question.pairs)}")
    ids = [pair.id for pair in question.pairs]
    if len(set(ids)) != len(ids):
        raise ValidationError("Matching pair identifiers must be unique")
    for pair in question.pairs:
        _assert_text(pair.left_content, "Matching left content")
        _assert_text(pair.right_content, "Matching right content")


def validate_question(
    question: Union[MultipleChoiceQuestion, MatchingQuestion],
    distractor_count: int = 3,
    pair_count: int = 4,
) -> None:
    if isinstance(question, MatchingQuestion):
        validate_matching(question, pair_count)
    else:
        validate_multiple_choice(question, distractor_count)


__all__ = [
    "ValidationError",
    "validate_matching",
    "validate_multiple_choice",
    "validate_question",
]
