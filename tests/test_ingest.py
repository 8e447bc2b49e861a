"""
Tests for library import/export and legacy record migration.
Run: python -m pytest tests/test_ingest.py -v
"""

import json

import pytest
from pydantic import ValidationError

from conftest import make_item
from memora.ingest import (
    CurrentItemRecord,
    LegacyDefinitionRecord,
    LegacyWordRecord,
    classify_record,
    export_library,
    ingest_item,
    load_library_json,
    parse_library,
)
from memora.models import Category, ItemStats
from memora.services import LibraryService
from memora.storage import InMemoryLibraryRepository


class TestClassification:

    def test_current_shape(self):
        record = classify_record({"key": "Hello", "pairs": ["Halo"]})
        assert isinstance(record, CurrentItemRecord)

    def test_legacy_word_shape(self):
        record = classify_record({"type": "WORD", "term": "Cat", "meanings": ["Kucing"]})
        assert isinstance(record, LegacyWordRecord)

    def test_legacy_definition_shape(self):
        record = classify_record(
            {"type": "DEFINITION", "term": "Gravity", "description": "Pulls things down."}
        )
        assert isinstance(record, LegacyDefinitionRecord)

    def test_meanings_win_over_description(self):
        record = classify_record({"term": "Run", "meanings": ["Lari"], "description": "Move fast"})
        assert isinstance(record, LegacyWordRecord)

    def test_invalid_stats_are_rejected(self):
        with pytest.raises(ValidationError):
            classify_record({"key": "A", "pairs": ["1"], "stats": {"correct": -1, "incorrect": 0}})


class TestMapping:

    def test_legacy_word_becomes_key_and_pairs(self):
        item = ingest_item({"type": "WORD", "term": " Cat ", "meanings": ["Kucing", " ", "Meong"]})
        assert item.key == "Cat"
        assert item.pairs == ["Kucing", "Meong"]

    def test_legacy_definition_becomes_single_pair(self):
        item = ingest_item(
            {"type": "DEFINITION", "term": "Gravity", "description": "The force that pulls things."}
        )
        assert item.key == "Gravity"
        assert item.pairs == ["The force that pulls things."]

    def test_defaults_are_filled_in(self):
        item = ingest_item({"key": "Hello", "pairs": ["Halo"]})
        assert item.id
        assert item.is_active is True
        assert item.category_id is None
        assert item.stats == ItemStats()
        assert item.created_at > 0

    def test_existing_fields_are_kept(self):
        item = ingest_item(
            {
                "id": "item-7",
                "key": "Hello",
                "pairs": ["Halo"],
                "isActive": False,
                "categoryId": "greetings",
                "imageUrl": "https://example.test/hello.png",
                "stats": {"correct": 3, "incorrect": 1},
                "createdAt": 1700000000000,
            }
        )
        assert item.id == "item-7"
        assert item.is_active is False
        assert item.category_id == "greetings"
        assert item.image_url == "https://example.test/hello.png"
        assert (item.stats.correct, item.stats.incorrect) == (3, 1)
        assert item.created_at == 1700000000000

    def test_missing_key_is_unknown(self):
        item = ingest_item({"type": "WORD", "meanings": ["Kucing"]})
        assert item.key == "Unknown"

    def test_current_record_without_pairs_uses_description(self):
        item = ingest_item({"key": "Gravity", "pairs": [], "description": "Pulls things down."})
        assert item.pairs == ["Pulls things down."]


class TestLibraryDocuments:

    def test_mixed_document(self, caplog):
        payload = {
            "items": [
                {"key": "Hello", "pairs": ["Halo"]},
                {"type": "WORD", "term": "Cat", "meanings": ["Kucing"]},
                {"type": "DEFINITION", "term": "Gravity", "description": "Pulls things down."},
            ],
            "categories": [{"id": "basics", "name": "Basics"}],
        }
        with caplog.at_level("INFO", logger="memora.ingest"):
            items, categories = parse_library(payload)
        assert [item.key for item in items] == ["Hello", "Cat", "Gravity"]
        assert categories == [Category(id="basics", name="Basics")]
        assert "Migrated 2 legacy item records" in caplog.text

    def test_json_text(self):
        items, categories = load_library_json(json.dumps({"items": [{"key": "A", "pairs": ["1"]}]}))
        assert len(items) == 1
        assert categories == []

    def test_export_then_import_keeps_items(self):
        original = [make_item("A", ["1"], correct=2), make_item("B", ["2", "two"])]
        document = export_library(original, [Category(id="c", name="Digits")])
        items, categories = load_library_json(document.model_dump_json(by_alias=True))
        assert items == original
        assert categories[0].name == "Digits"

    def test_import_merges_by_id(self):
        repository = InMemoryLibraryRepository(items=[make_item("A", ["1"]), make_item("B", ["2"])])
        service = LibraryService(repository)

        counts = service.import_library(
            {
                "items": [
                    {"id": "id-A", "key": "A", "pairs": ["one"]},
                    {"id": "id-C", "key": "C", "pairs": ["3"]},
                ],
                "categories": [],
            }
        )

        assert counts == (2, 0)
        by_id = {item.id: item for item in repository.list_items()}
        assert set(by_id) == {"id-A", "id-B", "id-C"}
        assert by_id["id-A"].pairs == ["one"]
