"""Simple in-process metrics registry for quiz engine instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field


@dataclass
class MetricsRegistry:
    """Holds counters exposed by the quiz engine."""

    sessions_started: int = 0
    sessions_finished: int = 0
    setup_rejections: Counter = field(default_factory=Counter)
    generated_questions: Counter = field(default_factory=Counter)
    generation_failures: int = 0
    generation_failure_reasons: Counter = field(default_factory=Counter)
    answer_outcomes: Counter = field(default_factory=Counter)
    matching_completions: int = 0
    matching_mismatches: int = 0
    persistence_failures: int = 0

    def record_session_started(self) -> None:
        self.sessions_started += 1

    def record_session_finished(self) -> None:
        self.sessions_finished += 1

    def record_setup_rejection(self, reason: str) -> None:
        self.setup_rejections[reason] += 1

    def record_question(self, question_type: str) -> None:
        self.generated_questions[question_type] += 1

    def record_generation_failure(self, reason: str) -> None:
        self.generation_failures += 1
        self.generation_failure_reasons[reason] += 1

    def record_answer(self, correct: bool) -> None:
        self.answer_outcomes["correct" if correct else "incorrect"] += 1

    def record_matching_attempt(self, is_match: bool) -> None:
        if not is_match:
            self.matching_mismatches += 1

    def record_matching_completion(self) -> None:
        self.matching_completions += 1

    def record_persistence_failure(self) -> None:
        self.persistence_failures += 1

    @property
    def answer_accuracy(self) -> float:
        total = sum(self.answer_outcomes.values())
        if total == 0:
            return 0.0
        return self.answer_outcomes["correct"] / total

    def reset(self) -> None:
        self.__init__()


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
