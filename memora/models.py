"""Pydantic models for the Memora quiz backend."""
from __future__ import annotations

import time
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .domain import ContentFilter, GameState, QuestionStyle, QuestionType, SessionMode


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid4())


class CamelModel(BaseModel):
    """Base model serialising field names in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ItemStats(CamelModel):
    """Lifetime answer counters for a memory item."""

    correct: int = Field(default=0, ge=0)
    incorrect: int = Field(default=0, ge=0)

    @property
    def attempts(self) -> int:
        return self.correct + self.incorrect

    @property
    def accuracy(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.correct / self.attempts


class MemoryItem(CamelModel):
    """A flashcard: a key with one or more associated pairs."""

    id: str = Field(default_factory=new_id)
    key: str
    pairs: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    is_active: bool = True
    category_id: Optional[str] = None
    stats: ItemStats = Field(default_factory=ItemStats)
    created_at: int = Field(default_factory=now_ms)


class Category(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Category names must be non-empty")
        return value.strip()


class AppSettings(CamelModel):
    max_questions_per_session: int = Field(default=10, ge=1)


class FilterSpec(CamelModel):
    """User selection narrowing the library down to a quiz pool.

    ``category_ids`` of ``None`` selects every category, an explicit list
    (possibly empty) selects only those categories.
    """

    category_ids: Optional[List[str]] = None
    content: ContentFilter = ContentFilter.MIX


class MultipleChoiceQuestion(CamelModel):
    type: Literal[QuestionType.MULTIPLE_CHOICE] = QuestionType.MULTIPLE_CHOICE
    item: MemoryItem
    question_text: str
    correct_answer_text: str
    distractors: List[str]


class MatchingPair(CamelModel):
    """One key/pair association of a matching round; ``id`` ties both sides."""

    id: str
    left_content: str
    right_content: str
    item: MemoryItem


class MatchingQuestion(CamelModel):
    type: Literal[QuestionType.MATCHING] = QuestionType.MATCHING
    pairs: List[MatchingPair]


QuestionData = Annotated[
    Union[MultipleChoiceQuestion, MatchingQuestion], Field(discriminator="type")
]


class SessionStats(CamelModel):
    correct: int = 0
    incorrect: int = 0

    @property
    def answered(self) -> int:
        return self.correct + self.incorrect


class SessionSummary(CamelModel):
    correct: int
    incorrect: int
    answered: int
    accuracy: int


class AnswerResult(CamelModel):
    is_correct: bool
    selected: str
    correct_answer_text: str


class MatchResult(CamelModel):
    is_match: bool
    round_complete: bool
    matched_ids: List[str]


class MatchingCard(CamelModel):
    id: str
    content: str


class QuestionView(CamelModel):
    """Presentation of the current question with its shuffled layout."""

    type: QuestionType
    question_text: Optional[str] = None
    options: Optional[List[str]] = None
    image_url: Optional[str] = None
    left: Optional[List[MatchingCard]] = None
    right: Optional[List[MatchingCard]] = None
    matched_ids: List[str] = Field(default_factory=list)


# region HTTP bodies
class ItemCreateRequest(CamelModel):
    key: str
    pairs: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    is_active: bool = True
    category_id: Optional[str] = None

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Item keys must be non-empty")
        return value.strip()


class ItemUpdateRequest(CamelModel):
    key: Optional[str] = None
    pairs: Optional[List[str]] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    category_id: Optional[str] = None


class CategoryCreateRequest(CamelModel):
    name: str


class SettingsUpdateRequest(CamelModel):
    max_questions_per_session: Optional[int] = Field(default=None, ge=1)


class LibraryExport(CamelModel):
    items: List[MemoryItem]
    categories: List[Category]


class LibraryImportRequest(CamelModel):
    """Raw library payload; items are classified during ingestion."""

    items: List[dict] = Field(default_factory=list)
    categories: List[dict] = Field(default_factory=list)


class LibraryImportResponse(CamelModel):
    imported_items: int
    imported_categories: int


class SessionStartRequest(CamelModel):
    mode: SessionMode = SessionMode.NORMAL
    style: QuestionStyle = QuestionStyle.ALIGNED
    filter: FilterSpec = Field(default_factory=FilterSpec)


class AnswerRequest(CamelModel):
    answer: str


class MatchRequest(CamelModel):
    left_id: str
    right_id: str


class SessionView(CamelModel):
    session_id: UUID
    mode: SessionMode
    style: QuestionStyle
    state: GameState
    round_index: int
    total_questions: Optional[int] = None
    question: Optional[QuestionView] = None
    stats: SessionStats
    last_answer: Optional[AnswerResult] = None
    last_match: Optional[MatchResult] = None
    summary: Optional[SessionSummary] = None


# endregion


__all__ = [
    "AnswerRequest",
    "AnswerResult",
    "AppSettings",
    "Category",
    "CategoryCreateRequest",
    "FilterSpec",
    "ItemCreateRequest",
    "ItemStats",
    "ItemUpdateRequest",
    "LibraryExport",
    "LibraryImportRequest",
    "LibraryImportResponse",
    "MatchRequest",
    "MatchResult",
    "MatchingCard",
    "MatchingPair",
    "MatchingQuestion",
    "MemoryItem",
    "MultipleChoiceQuestion",
    "QuestionData",
    "QuestionView",
    "SessionStartRequest",
    "SessionStats",
    "SessionSummary",
    "SessionView",
    "SettingsUpdateRequest",
]
