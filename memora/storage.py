"""Concrete repository implementations backed by memory and SQLite."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import PersistenceWriteFailure
from .models import AppSettings, Category, ItemStats, MemoryItem
from .repositories import LibraryRepository

logger = logging.getLogger(__name__)

SETTINGS_ID = "app_settings"

SEED_ITEMS = [
    MemoryItem(id="seed-1", key="Cat", pairs=["Kucing", "Hewan berkaki empat"]),
    MemoryItem(
        id="seed-2",
        key="Photosynthesis",
        pairs=["The process by which green plants use sunlight to synthesize foods."],
    ),
    MemoryItem(id="seed-3", key="Hello", pairs=["Halo", "Hai", "Sapaan"]),
    MemoryItem(id="seed-4", key="Run", pairs=["Lari", "Berlari"]),
    MemoryItem(
        id="seed-5",
        key="Gravity",
        pairs=["The force that attracts a body toward the center of the earth."],
    ),
]


class InMemoryLibraryRepository(LibraryRepository):
    """Dictionary-backed library used for tests and ephemeral sessions."""

    def __init__(
        self,
        items: Iterable[MemoryItem] = (),
        categories: Iterable[Category] = (),
        settings: Optional[AppSettings] = None,
    ) -> None:
        self._items: Dict[str, MemoryItem] = {item.id: item for item in items}
        self._categories: Dict[str, Category] = {category.id: category for category in categories}
        self._settings = settings or AppSettings()

    # region Items
    def list_items(self) -> List[MemoryItem]:
        return list(self._items.values())

    def get_item(self, item_id: str) -> Optional[MemoryItem]:
        return self._items.get(item_id)

    def put_item(self, item: MemoryItem) -> None:
        self._items[item.id] = item

    def delete_item(self, item_id: str) -> None:
        self._items.pop(item_id, None)

    def bulk_import(self, items: Iterable[MemoryItem], categories: Iterable[Category]) -> None:
        for category in categories:
            self._categories[category.id] = category
        for item in items:
            self._items[item.id] = item

    # endregion

    # region Categories
    def list_categories(self) -> List[Category]:
        return list(self._categories.values())

    def put_category(self, category: Category) -> None:
        self._categories[category.id] = category

    def delete_category(self, category_id: str) -> None:
        self._categories.pop(category_id, None)
        for item_id in [i.id for i in self._items.values() if i.category_id == category_id]:
            del self._items[item_id]

    # endregion

    def get_settings(self) -> AppSettings:
        return self._settings

    def save_settings(self, settings: AppSettings) -> None:
        self._settings = settings


class SqliteLibraryRepository(LibraryRepository):
    """Stores items, categories and settings as JSON payloads in SQLite."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialise_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _initialise_schema(self) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS items (
                    item_id TEXT PRIMARY KEY,
                    category_id TEXT,
                    payload_json TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS categories (
                    category_id TEXT PRIMARY KEY,
                    payload_json TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    payload_json TEXT NOT NULL
                );
                """
            )
            self._conn.commit()

    @contextmanager
    def _writing(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                yield self._conn.cursor()
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise PersistenceWriteFailure(f"SQLite write failed: {exc}") from exc

    @staticmethod
    def _item_row(item: MemoryItem) -> tuple:
        return (item.id, item.category_id, item.model_dump_json(by_alias=True))

    # ItemRepository -----------------------------------------------------
    def list_items(self) -> List[MemoryItem]:
        with self._lock:
            rows = self._conn.execute("SELECT payload_json FROM items ORDER BY rowid").fetchall()
        return [MemoryItem.model_validate_json(row["payload_json"]) for row in rows]

    def get_item(self, item_id: str) -> Optional[MemoryItem]:
        with self._lock:
            row = self._conn.execute(
                "SELECT payload_json FROM items WHERE item_id = ?", (item_id,)
            ).fetchone()
        if not row:
            return None
        return MemoryItem.model_validate_json(row["payload_json"])

    def put_item(self, item: MemoryItem) -> None:
        with self._writing() as cursor:
            cursor.execute(
                """
                INSERT INTO items (item_id, category_id, payload_json)
                VALUES (?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE
                   SET category_id = excluded.category_id,
                       payload_json = excluded.payload_json
                """,
                self._item_row(item),
            )

    def delete_item(self, item_id: str) -> None:
        with self._writing() as cursor:
            cursor.execute("DELETE FROM items WHERE item_id = ?", (item_id,))

    def bulk_import(self, items: Iterable[MemoryItem], categories: Iterable[Category]) -> None:
        item_rows = [self._item_row(item) for item in items]
        category_rows = [
            (category.id, category.model_dump_json(by_alias=True)) for category in categories
        ]
        with self._writing() as cursor:
            cursor.executemany(
                """
                INSERT INTO categories (category_id, payload_json) VALUES (?, ?)
                ON CONFLICT(category_id) DO UPDATE SET payload_json = excluded.payload_json
                """,
                category_rows,
            )
            cursor.executemany(
                """
                INSERT INTO items (item_id, category_id, payload_json) VALUES (?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE
                   SET category_id = excluded.category_id,
                       payload_json = excluded.payload_json
                """,
                item_rows,
            )

    # CategoryRepository -------------------------------------------------
    def list_categories(self) -> List[Category]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT payload_json FROM categories ORDER BY rowid"
            ).fetchall()
        return [Category.model_validate_json(row["payload_json"]) for row in rows]

    def put_category(self, category: Category) -> None:
        with self._writing() as cursor:
            cursor.execute(
                """
                INSERT INTO categories (category_id, payload_json) VALUES (?, ?)
                ON CONFLICT(category_id) DO UPDATE SET payload_json = excluded.payload_json
                """,
                (category.id, category.model_dump_json(by_alias=True)),
            )

    def delete_category(self, category_id: str) -> None:
        with self._writing() as cursor:
            cursor.execute("DELETE FROM categories WHERE category_id = ?", (category_id,))
            cursor.execute("DELETE FROM items WHERE category_id = ?", (category_id,))

    # SettingsProvider ---------------------------------------------------
    def get_settings(self) -> AppSettings:
        with self._lock:
            row = self._conn.execute(
                "SELECT payload_json FROM settings WHERE key = ?", (SETTINGS_ID,)
            ).fetchone()
        if not row:
            return AppSettings()
        return AppSettings.model_validate(json.loads(row["payload_json"]))

    def save_settings(self, settings: AppSettings) -> None:
        with self._writing() as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO settings (key, payload_json) VALUES (?, ?)",
                (SETTINGS_ID, settings.model_dump_json(by_alias=True)),
            )


def seed_if_empty(repository: LibraryRepository) -> bool:
    """Insert the starter items into a fresh library."""

    if repository.list_items() or repository.list_categories():
        return False
    seeded = [item.model_copy(update={"stats": ItemStats()}) for item in SEED_ITEMS]
    repository.bulk_import(seeded, [])
    logger.info("Seeded empty library with %d items", len(seeded))
    return True


__all__ = [
    "InMemoryLibraryRepository",
    "SEED_ITEMS",
    "SqliteLibraryRepository",
    "seed_if_empty",
]
