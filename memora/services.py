"""Core services implementing the quiz session and library workflows."""
from __future__ import annotations

import logging
import math
import random
import time
from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
from uuid import UUID, uuid4

from .domain import (
    GameState,
    MatchingProgress,
    QuestionStyle,
    QuestionType,
    SessionConfig,
    SessionMode,
)
from .errors import InsufficientPoolError, QuestionGenerationFailure, SessionStateError
from .generation import Question, QuestionGenerator
from .ingest import export_library, parse_library
from .metrics import METRICS
from .models import (
    AnswerResult,
    AppSettings,
    Category,
    FilterSpec,
    ItemCreateRequest,
    ItemStats,
    ItemUpdateRequest,
    LibraryExport,
    LibraryImportRequest,
    MatchingCard,
    MatchingQuestion,
    MatchResult,
    MemoryItem,
    MultipleChoiceQuestion,
    QuestionView,
    SessionStartRequest,
    SessionStats,
    SessionSummary,
    SessionView,
    SettingsUpdateRequest,
)
from .repositories import ItemRepository, LibraryRepository, SettingsProvider
from .selection import ensure_pool_size, resolve_pool

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def apply_outcome(item: MemoryItem, was_correct: bool) -> MemoryItem:
    """Return a copy of ``item`` with exactly one lifetime counter incremented."""

    stats = item.stats
    updated = ItemStats(
        correct=stats.correct + (1 if was_correct else 0),
        incorrect=stats.incorrect + (0 if was_correct else 1),
    )
    return item.model_copy(update={"stats": updated})


class StatisticsTracker:
    """Keeps the session's view of its items and writes outcomes back.

    Writes are best effort: with an executor they are fire-and-forget, and
    failures are logged without interrupting the session either way.
    """

    def __init__(
        self,
        repository: ItemRepository,
        items: Iterable[MemoryItem] = (),
        executor: Optional[Executor] = None,
    ) -> None:
        self._repository = repository
        self._items: Dict[str, MemoryItem] = {item.id: item for item in items}
        self._executor = executor

    def get(self, item_id: str) -> MemoryItem:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise KeyError(f"Item {item_id} is not part of this session") from exc

    def record_outcome(self, item_id: str, was_correct: bool) -> MemoryItem:
        updated = apply_outcome(self.get(item_id), was_correct)
        self._items[item_id] = updated
        self._persist(item_id, was_correct)
        return updated

    def _write_back(self, item_id: str, was_correct: bool) -> None:
        # library edits made during the session must survive the write
        current = self._repository.get_item(item_id)
        if current is None:
            logger.info("Item %s was removed from the library; statistics not written", item_id)
            return
        self._repository.put_item(apply_outcome(current, was_correct))

    def _persist(self, item_id: str, was_correct: bool) -> None:
        if self._executor is None:
            try:
                self._write_back(item_id, was_correct)
            except Exception as exc:
                self._report_failure(item_id, exc)
            return
        future = self._executor.submit(self._write_back, item_id, was_correct)
        future.add_done_callback(lambda done: self._on_written(item_id, done))

    def _on_written(self, item_id: str, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._report_failure(item_id, exc)

    def _report_failure(self, item_id: str, exc: BaseException) -> None:
        METRICS.record_persistence_failure()
        logger.error("Failed to persist statistics for item %s", item_id, exc_info=exc)


class QuizSession:
    """State machine for a single quiz session.

    The session starts in ``PREPARING`` and only enters ``PLAYING`` once the
    pool has been validated and the initial questions generated. Each answer
    moves it to ``FEEDBACK``; :meth:`advance` moves on to the next question
    or to the terminal ``FINISHED`` state.
    """

    def __init__(
        self,
        repository: ItemRepository,
        settings: SettingsProvider,
        mode: SessionMode = SessionMode.NORMAL,
        style: QuestionStyle = QuestionStyle.ALIGNED,
        filter_spec: Optional[FilterSpec] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = time.monotonic,
        config: Optional[SessionConfig] = None,
        executor: Optional[Executor] = None,
        session_id: Optional[UUID] = None,
    ) -> None:
        self.id = session_id or uuid4()
        self.mode = mode
        self.style = style
        self.filter_spec = filter_spec or FilterSpec()
        self.state = GameState.PREPARING
        self.questions: List[Question] = []
        self.current_index = 0
        self.stats = SessionStats()
        self.last_answer: Optional[AnswerResult] = None
        self.last_match: Optional[MatchResult] = None

        self._repository = repository
        self._settings = settings
        self._rng = rng or random.Random()
        self._clock = clock
        self._config = config or SessionConfig()
        self._executor = executor
        self._generator = QuestionGenerator(style, self._rng, self._config, self.filter_spec.content)
        self._tracker: Optional[StatisticsTracker] = None
        self._pool_ids: List[str] = []
        self._matching: Optional[MatchingProgress] = None
        self._presentation: Optional[QuestionView] = None
        self._last_advance_at: Optional[float] = None

    # region Properties
    @property
    def pool(self) -> List[MemoryItem]:
        if self._tracker is None:
            return []
        return [self._tracker.get(item_id) for item_id in self._pool_ids]

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def is_finished(self) -> bool:
        return self.state == GameState.FINISHED

    def item(self, item_id: str) -> MemoryItem:
        if self._tracker is None:
            raise KeyError(f"Item {item_id} is not part of this session")
        return self._tracker.get(item_id)

    # endregion

    def start(self) -> None:
        """Resolve the pool and generate the opening questions.

        Raises :class:`InsufficientPoolError` when the filtered pool is too
        small and :class:`QuestionGenerationFailure` when not a single
        question can be produced. In both cases the session stays
        ``PREPARING``.
        """

        if self.state != GameState.PREPARING:
            raise SessionStateError("Session has already been started")

        pool = resolve_pool(self._repository.list_items(), self.filter_spec)
        try:
            ensure_pool_size(pool, self._config.min_pool_size)
        except InsufficientPoolError:
            METRICS.record_setup_rejection("insufficient_pool")
            raise

        self._tracker = StatisticsTracker(self._repository, pool, self._executor)
        self._pool_ids = [item.id for item in pool]

        if self.mode == SessionMode.INFINITE:
            count = 1
        else:
            count = self._settings.get_settings().max_questions_per_session

        questions: List[Question] = []
        for offset in range(count):
            try:
                questions.append(self._generator.next_question(pool, offset + 1))
            except QuestionGenerationFailure:
                break
        if not questions:
            METRICS.record_setup_rejection("generation_failed")
            raise QuestionGenerationFailure("No questions could be generated for this selection")
        if len(questions) < count:
            logger.warning("Session %s generated %d of %d questions", self.id, len(questions), count)

        self.questions = questions
        self.stats = SessionStats()
        self._enter_question(0)
        METRICS.record_session_started()
        logger.info(
            "Started %s session %s with %d items and %d questions",
            self.mode.value,
            self.id,
            len(pool),
            len(questions),
        )

    def submit_answer(self, answer: str) -> Optional[AnswerResult]:
        """Grade a multiple-choice answer; ignored unless the session is playing."""

        if self.state != GameState.PLAYING:
            logger.debug("Ignoring answer for session %s in state %s", self.id, self.state.value)
            return None
        question = self.current_question
        if not isinstance(question, MultipleChoiceQuestion):
            raise SessionStateError("The current question is a matching round")

        correct = answer == question.correct_answer_text
        if correct:
            self.stats.correct += 1
        else:
            self.stats.incorrect += 1
        self._tracker.record_outcome(question.item.id, correct)
        METRICS.record_answer(correct)

        self.last_answer = AnswerResult(
            is_correct=correct,
            selected=answer,
            correct_answer_text=question.correct_answer_text,
        )
        self.state = GameState.FEEDBACK
        return self.last_answer

    def submit_match(self, left_id: str, right_id: str) -> Optional[MatchResult]:
        """Connect a left card to a right card of the current matching round.

        Mismatches are reported but never penalised. Once every pair has been
        matched the round counts as one correct answer and every involved item
        records a correct outcome.
        """

        if self.state != GameState.PLAYING:
            return None
        question = self.current_question
        if not isinstance(question, MatchingQuestion):
            raise SessionStateError("The current question is not a matching round")

        outcome = self._matching.register(left_id, right_id)
        if outcome is None:
            return None
        METRICS.record_matching_attempt(outcome)

        complete = self._matching.is_complete
        if complete:
            for pair in question.pairs:
                self._tracker.record_outcome(pair.id, True)
            self.stats.correct += 1
            METRICS.record_matching_completion()
            METRICS.record_answer(True)
            self.state = GameState.FEEDBACK

        matched_ids = [pair.id for pair in question.pairs if pair.id in self._matching.matched]
        self._presentation.matched_ids = matched_ids
        self.last_match = MatchResult(is_match=outcome, round_complete=complete, matched_ids=matched_ids)
        return self.last_match

    def advance(self) -> bool:
        """Move past the feedback of the current question.

        Returns ``False`` when the call was coalesced: outside ``FEEDBACK`` or
        within the cooldown window of the previous advance.
        """

        if self.state != GameState.FEEDBACK:
            return False
        now = self._clock()
        if (
            self._last_advance_at is not None
            and now - self._last_advance_at < self._config.advance_cooldown_seconds
        ):
            return False
        self._last_advance_at = now

        if self.mode == SessionMode.NORMAL:
            if self.current_index < len(self.questions) - 1:
                self._enter_question(self.current_index + 1)
            else:
                self._finish()
            return True

        try:
            question = self._generator.next_question(self.pool, len(self.questions) + 1)
        except QuestionGenerationFailure as exc:
            logger.info("Ending infinite session %s early: %s", self.id, exc.reason)
            self._finish()
            return True
        self.questions.append(question)
        self._enter_question(len(self.questions) - 1)
        return True

    def exit(self) -> Optional[SessionSummary]:
        """Leave the session.

        Only an infinite session with at least one answer is finished here;
        otherwise ``None`` is returned and the caller simply drops the
        session.
        """

        if self.state == GameState.FINISHED:
            return self.summary()
        if (
            self.mode == SessionMode.INFINITE
            and self.state in (GameState.PLAYING, GameState.FEEDBACK)
            and self.stats.answered > 0
        ):
            self._finish()
            return self.summary()
        return None

    def summary(self) -> SessionSummary:
        answered = self.stats.answered
        accuracy = math.floor(self.stats.correct * 100 / answered + 0.5) if answered else 0
        return SessionSummary(
            correct=self.stats.correct,
            incorrect=self.stats.incorrect,
            answered=answered,
            accuracy=accuracy,
        )

    def presentation(self) -> Optional[QuestionView]:
        if self.state in (GameState.PREPARING, GameState.FINISHED):
            return None
        return self._presentation

    def view(self) -> SessionView:
        return SessionView(
            session_id=self.id,
            mode=self.mode,
            style=self.style,
            state=self.state,
            round_index=self.current_index,
            total_questions=len(self.questions) if self.mode == SessionMode.NORMAL else None,
            question=self.presentation(),
            stats=self.stats.model_copy(),
            last_answer=self.last_answer,
            last_match=self.last_match,
            summary=self.summary() if self.is_finished else None,
        )

    def _enter_question(self, index: int) -> None:
        self.current_index = index
        self.last_answer = None
        self.last_match = None
        question = self.questions[index]
        if isinstance(question, MatchingQuestion):
            self._matching = MatchingProgress(pair_ids=[pair.id for pair in question.pairs])
            left = [MatchingCard(id=pair.id, content=pair.left_content) for pair in question.pairs]
            right = [MatchingCard(id=pair.id, content=pair.right_content) for pair in question.pairs]
            self._rng.shuffle(left)
            self._rng.shuffle(right)
            self._presentation = QuestionView(type=QuestionType.MATCHING, left=left, right=right)
        else:
            self._matching = None
            options = [question.correct_answer_text, *question.distractors]
            self._rng.shuffle(options)
            self._presentation = QuestionView(
                type=QuestionType.MULTIPLE_CHOICE,
                question_text=question.question_text,
                options=options,
                image_url=question.item.image_url,
            )
        self.state = GameState.PLAYING

    def _finish(self) -> None:
        self.state = GameState.FINISHED
        METRICS.record_session_finished()
        logger.info(
            "Finished session %s: %d correct, %d incorrect",
            self.id,
            self.stats.correct,
            self.stats.incorrect,
        )


class QuizService:
    """Registry of active quiz sessions."""

    def __init__(
        self,
        repository: LibraryRepository,
        config: Optional[SessionConfig] = None,
        executor: Optional[Executor] = None,
        rng_factory: Callable[[], random.Random] = random.Random,
        clock: Clock = time.monotonic,
    ) -> None:
        self._repository = repository
        self._config = config or SessionConfig()
        self._executor = executor
        self._rng_factory = rng_factory
        self._clock = clock
        self._sessions: Dict[UUID, QuizSession] = {}

    def start_session(self, request: SessionStartRequest) -> QuizSession:
        self._evict_finished()
        session = QuizSession(
            self._repository,
            self._repository,
            mode=request.mode,
            style=request.style,
            filter_spec=request.filter,
            rng=self._rng_factory(),
            clock=self._clock,
            config=self._config,
            executor=self._executor,
        )
        session.start()
        self._sessions[session.id] = session
        return session

    def get(self, session_id: UUID) -> QuizSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session_id: {session_id}")
        return session

    def answer(self, session_id: UUID, answer: str) -> QuizSession:
        session = self.get(session_id)
        session.submit_answer(answer)
        return session

    def match(self, session_id: UUID, left_id: str, right_id: str) -> QuizSession:
        session = self.get(session_id)
        session.submit_match(left_id, right_id)
        return session

    def advance(self, session_id: UUID) -> QuizSession:
        session = self.get(session_id)
        session.advance()
        return session

    def exit(self, session_id: UUID) -> Tuple[QuizSession, Optional[SessionSummary]]:
        session = self.get(session_id)
        summary = session.exit()
        del self._sessions[session_id]
        return session, summary

    def _evict_finished(self) -> None:
        finished = [key for key, session in self._sessions.items() if session.is_finished]
        for key in finished:
            del self._sessions[key]
        if finished:
            logger.debug("Evicted %d finished sessions", len(finished))


def _clean_pairs(pairs: Iterable[str]) -> List[str]:
    return [pair.strip() for pair in pairs if pair and pair.strip()]


class LibraryService:
    """Item, category and settings management on top of a repository."""

    def __init__(self, repository: LibraryRepository) -> None:
        self._repository = repository

    # region Items
    def list_items(self) -> List[MemoryItem]:
        return self._repository.list_items()

    def get_item(self, item_id: str) -> MemoryItem:
        item = self._repository.get_item(item_id)
        if item is None:
            raise KeyError(f"Unknown item_id: {item_id}")
        return item

    def add_item(self, request: ItemCreateRequest) -> MemoryItem:
        self._assert_category(request.category_id)
        item = MemoryItem(
            key=request.key,
            pairs=_clean_pairs(request.pairs),
            image_url=request.image_url,
            is_active=request.is_active,
            category_id=request.category_id,
        )
        self._repository.put_item(item)
        return item

    def update_item(self, item_id: str, request: ItemUpdateRequest) -> MemoryItem:
        item = self.get_item(item_id)
        updates: Dict[str, Any] = request.model_dump(exclude_unset=True)
        if "key" in updates:
            key = (updates["key"] or "").strip()
            if not key:
                raise ValueError("Item keys must be non-empty")
            updates["key"] = key
        if "pairs" in updates:
            updates["pairs"] = _clean_pairs(updates["pairs"] or [])
        if "is_active" in updates and updates["is_active"] is None:
            del updates["is_active"]
        if "category_id" in updates:
            self._assert_category(updates["category_id"])
        updated = item.model_copy(update=updates)
        self._repository.put_item(updated)
        return updated

    def toggle_active(self, item_id: str) -> MemoryItem:
        item = self.get_item(item_id)
        updated = item.model_copy(update={"is_active": not item.is_active})
        self._repository.put_item(updated)
        return updated

    def delete_item(self, item_id: str) -> None:
        self.get_item(item_id)
        self._repository.delete_item(item_id)

    # endregion

    # region Categories
    def list_categories(self) -> List[Category]:
        return self._repository.list_categories()

    def add_category(self, name: str) -> Category:
        category = Category(name=name)
        self._repository.put_category(category)
        return category

    def delete_category(self, category_id: str) -> None:
        if all(category.id != category_id for category in self._repository.list_categories()):
            raise KeyError(f"Unknown category_id: {category_id}")
        self._repository.delete_category(category_id)

    def _assert_category(self, category_id: Optional[str]) -> None:
        if category_id is None:
            return
        if all(category.id != category_id for category in self._repository.list_categories()):
            raise ValueError(f"Unknown category_id: {category_id}")

    # endregion

    # region Settings
    def get_settings(self) -> AppSettings:
        return self._repository.get_settings()

    def update_settings(self, request: SettingsUpdateRequest) -> AppSettings:
        updates = {key: value for key, value in request.model_dump(exclude_unset=True).items() if value is not None}
        settings = self._repository.get_settings().model_copy(update=updates)
        self._repository.save_settings(settings)
        return settings

    # endregion

    # region Import / export
    def import_library(
        self, payload: Union[LibraryImportRequest, Dict[str, Any]]
    ) -> Tuple[int, int]:
        items, categories = parse_library(payload)
        self._repository.bulk_import(items, categories)
        logger.info("Imported %d items and %d categories", len(items), len(categories))
        return len(items), len(categories)

    def export_library(self) -> LibraryExport:
        return export_library(self._repository.list_items(), self._repository.list_categories())

    # endregion


__all__ = [
    "LibraryService",
    "QuizService",
    "QuizSession",
    "StatisticsTracker",
    "apply_outcome",
]
