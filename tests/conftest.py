import random

import pytest

from memora.domain import SessionConfig
from memora.metrics import METRICS
from memora.models import AppSettings, ItemStats, MemoryItem
from memora.storage import InMemoryLibraryRepository


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def tick(self, seconds: float) -> None:
        self.now += seconds


def make_item(key, pairs, correct=0, incorrect=0, **kwargs):
    return MemoryItem(
        id=kwargs.pop("id", f"id-{key}"),
        key=key,
        pairs=list(pairs),
        stats=ItemStats(correct=correct, incorrect=incorrect),
        **kwargs,
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return SessionConfig(advance_cooldown_seconds=0.0)


@pytest.fixture
def digits():
    """Four single-pair items, the smallest pool a session accepts."""
    return [
        make_item("A", ["1"]),
        make_item("B", ["2"]),
        make_item("C", ["3"]),
        make_item("D", ["4"]),
    ]


@pytest.fixture
def vocabulary():
    return [
        make_item("Cat", ["Kucing", "Hewan berkaki empat"]),
        make_item("Hello", ["Halo", "Hai", "Sapaan"]),
        make_item("Run", ["Lari", "Berlari"]),
        make_item("Dog", ["Anjing"]),
        make_item("Bird", ["Burung"]),
        make_item("Fish", ["Ikan"]),
    ]


@pytest.fixture
def make_repository():
    def factory(items, max_questions=4, categories=()):
        return InMemoryLibraryRepository(
            items=items,
            categories=categories,
            settings=AppSettings(max_questions_per_session=max_questions),
        )

    return factory
