"""Library import/export with migration of legacy item shapes.

Exported libraries have always been JSON documents of the form
``{"items": [...], "categories": [...]}``, but the item records changed
over time:

* ``current``: ``{"key": ..., "pairs": [...]}``
* ``legacy_word``: ``{"type": "WORD", "term": ..., "meanings": [...]}``
* ``legacy_definition``: ``{"type": "DEFINITION", "term": ..., "description": ...}``

Each raw record is classified into exactly one of these shapes and mapped
to a :class:`~memora.models.MemoryItem` by the function owning that shape.
"""
from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Callable, ClassVar, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import Discriminator, Tag, TypeAdapter

from .models import (
    CamelModel,
    Category,
    ItemStats,
    LibraryExport,
    LibraryImportRequest,
    MemoryItem,
    new_id,
    now_ms,
)

logger = logging.getLogger(__name__)

UNKNOWN_KEY = "Unknown"


class _RecordBase(CamelModel):
    shape: ClassVar[str]

    id: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    category_id: Optional[str] = None
    stats: Optional[ItemStats] = None
    created_at: Optional[int] = None


class CurrentItemRecord(_RecordBase):
    shape: ClassVar[str] = "current"

    key: Optional[str] = None
    pairs: List[str] = []
    description: Optional[str] = None


class LegacyWordRecord(_RecordBase):
    shape: ClassVar[str] = "legacy_word"

    term: Optional[str] = None
    meanings: List[str] = []


class LegacyDefinitionRecord(_RecordBase):
    shape: ClassVar[str] = "legacy_definition"

    term: Optional[str] = None
    description: str


def _record_shape(raw: Any) -> str:
    if isinstance(raw, dict):
        if "key" in raw or "pairs" in raw:
            return "current"
        if raw.get("description") and not raw.get("meanings"):
            return "legacy_definition"
        return "legacy_word"
    return getattr(raw, "shape", "current")


ItemRecord = Annotated[
    Union[
        Annotated[CurrentItemRecord, Tag("current")],
        Annotated[LegacyWordRecord, Tag("legacy_word")],
        Annotated[LegacyDefinitionRecord, Tag("legacy_definition")],
    ],
    Discriminator(_record_shape),
]

_RECORD_ADAPTER: TypeAdapter = TypeAdapter(ItemRecord)


def _clean_pairs(values: Iterable[Optional[str]]) -> List[str]:
    return [value.strip() for value in values if value and value.strip()]


def _clean_key(value: Optional[str]) -> str:
    return (value or "").strip() or UNKNOWN_KEY


def _common_fields(record: _RecordBase) -> Dict[str, Any]:
    return {
        "id": record.id or new_id(),
        "image_url": record.image_url,
        "is_active": True if record.is_active is None else record.is_active,
        "category_id": record.category_id,
        "stats": record.stats or ItemStats(),
        "created_at": record.created_at or now_ms(),
    }


def map_current(record: CurrentItemRecord) -> MemoryItem:
    pairs = _clean_pairs(record.pairs)
    if not pairs and record.description:
        pairs = _clean_pairs([record.description])
    return MemoryItem(key=_clean_key(record.key), pairs=pairs, **_common_fields(record))


def map_legacy_word(record: LegacyWordRecord) -> MemoryItem:
    return MemoryItem(
        key=_clean_key(record.term), pairs=_clean_pairs(record.meanings), **_common_fields(record)
    )


def map_legacy_definition(record: LegacyDefinitionRecord) -> MemoryItem:
    return MemoryItem(
        key=_clean_key(record.term),
        pairs=_clean_pairs([record.description]),
        **_common_fields(record),
    )


_MAPPERS: Dict[str, Callable[[Any], MemoryItem]] = {
    "current": map_current,
    "legacy_word": map_legacy_word,
    "legacy_definition": map_legacy_definition,
}


def classify_record(raw: Dict[str, Any]) -> _RecordBase:
    """Validate a raw item record against the shape it belongs to."""

    return _RECORD_ADAPTER.validate_python(raw)


def ingest_item(raw: Dict[str, Any]) -> MemoryItem:
    record = classify_record(raw)
    return _MAPPERS[record.shape](record)


def parse_library(
    payload: Union[LibraryImportRequest, Dict[str, Any]]
) -> Tuple[List[MemoryItem], List[Category]]:
    """Turn an exported library document into items and categories."""

    if not isinstance(payload, LibraryImportRequest):
        payload = LibraryImportRequest.model_validate(payload)
    categories = [Category.model_validate(raw) for raw in payload.categories]
    items = [ingest_item(raw) for raw in payload.items]
    migrated = sum(1 for raw in payload.items if _record_shape(raw) != "current")
    if migrated:
        logger.info("Migrated %d legacy item records during import", migrated)
    return items, categories


def load_library_json(text: str) -> Tuple[List[MemoryItem], List[Category]]:
    return parse_library(json.loads(text))


def export_library(items: Iterable[MemoryItem], categories: Iterable[Category]) -> LibraryExport:
    return LibraryExport(items=list(items), categories=list(categories))


__all__ = [
    "CurrentItemRecord",
    "ItemRecord",
    "LegacyDefinitionRecord",
    "LegacyWordRecord",
    "classify_record",
    "export_library",
    "ingest_item",
    "load_library_json",
    "map_current",
    "map_legacy_definition",
    "map_legacy_word",
    "parse_library",
]
