"""Repository interfaces for the Memora library and settings."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .models import AppSettings, Category, MemoryItem


class ItemRepository(ABC):
    """Durable collection of memory items."""

    @abstractmethod
    def list_items(self) -> List[MemoryItem]:
        """Return every stored item."""

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[MemoryItem]:
        """Return the item with ``item_id`` or ``None``."""

    @abstractmethod
    def put_item(self, item: MemoryItem) -> None:
        """Insert or replace an item by id."""

    @abstractmethod
    def delete_item(self, item_id: str) -> None:
        """Remove an item; unknown ids are ignored."""

    @abstractmethod
    def bulk_import(self, items: Iterable[MemoryItem], categories: Iterable[Category]) -> None:
        """Merge items and categories by id, later entries winning."""


class CategoryRepository(ABC):
    """Durable collection of categories."""

    @abstractmethod
    def list_categories(self) -> List[Category]:
        """Return every stored category."""

    @abstractmethod
    def put_category(self, category: Category) -> None:
        """Insert or replace a category by id."""

    @abstractmethod
    def delete_category(self, category_id: str) -> None:
        """Remove a category together with the items referencing it."""


class SettingsProvider(ABC):
    """Access to the global application settings."""

    @abstractmethod
    def get_settings(self) -> AppSettings:
        """Return the stored settings or defaults."""

    @abstractmethod
    def save_settings(self, settings: AppSettings) -> None:
        """Persist the settings."""


class LibraryRepository(ItemRepository, CategoryRepository, SettingsProvider, ABC):
    """Convenience union implemented by the bundled storage backends."""


__all__ = [
    "CategoryRepository",
    "ItemRepository",
    "LibraryRepository",
    "SettingsProvider",
]
