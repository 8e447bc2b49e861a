"""
HTTP tests for the FastAPI application.
Run: python -m pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from memora.errors import PersistenceWriteFailure
from memora.main import app
from memora.services import LibraryService
from memora.storage import InMemoryLibraryRepository


class ReadOnlyRepository(InMemoryLibraryRepository):
    def put_item(self, item):
        raise PersistenceWriteFailure("SQLite write failed: disk I/O error")

    def put_category(self, category):
        raise PersistenceWriteFailure("SQLite write failed: disk I/O error")


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("MEMORA_DB_PATH", raising=False)
    monkeypatch.setenv("MEMORA_ADVANCE_COOLDOWN", "0")
    monkeypatch.setenv("MEMORA_SEED", "1")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def empty_client(monkeypatch):
    monkeypatch.delenv("MEMORA_DB_PATH", raising=False)
    monkeypatch.setenv("MEMORA_ADVANCE_COOLDOWN", "0")
    monkeypatch.setenv("MEMORA_SEED", "0")
    with TestClient(app) as test_client:
        yield test_client


def add_item(client, key, pairs, **extra):
    response = client.post("/v1/items", json={"key": key, "pairs": pairs, **extra})
    assert response.status_code == 201
    return response.json()


class TestLibraryRoutes:

    def test_seeded_library(self, client):
        response = client.get("/v1/items")
        assert response.status_code == 200
        keys = [item["key"] for item in response.json()]
        assert keys == ["Cat", "Photosynthesis", "Hello", "Run", "Gravity"]

    def test_create_update_toggle_delete(self, empty_client):
        created = add_item(empty_client, "  Dog ", ["Anjing", " "])
        assert created["key"] == "Dog"
        assert created["pairs"] == ["Anjing"]
        assert created["isActive"] is True

        response = empty_client.patch(f"/v1/items/{created['id']}", json={"pairs": ["Anjing", "Guguk"]})
        assert response.json()["pairs"] == ["Anjing", "Guguk"]

        response = empty_client.post(f"/v1/items/{created['id']}/toggle")
        assert response.json()["isActive"] is False

        assert empty_client.delete(f"/v1/items/{created['id']}").status_code == 204
        assert empty_client.get("/v1/items").json() == []

    def test_blank_key_rejected(self, empty_client):
        assert empty_client.post("/v1/items", json={"key": "  ", "pairs": ["x"]}).status_code == 422

    def test_unknown_item(self, empty_client):
        assert empty_client.post("/v1/items/nope/toggle").status_code == 404
        assert empty_client.patch("/v1/items/nope", json={"key": "x"}).status_code == 404

    def test_unknown_category_on_create(self, empty_client):
        response = empty_client.post("/v1/items", json={"key": "A", "pairs": ["1"], "categoryId": "nope"})
        assert response.status_code == 400

    def test_category_lifecycle(self, empty_client):
        category = empty_client.post("/v1/categories", json={"name": "Animals"}).json()
        add_item(empty_client, "Cat", ["Kucing"], categoryId=category["id"])
        add_item(empty_client, "Hello", ["Halo"])

        assert empty_client.delete(f"/v1/categories/{category['id']}").status_code == 204
        assert [item["key"] for item in empty_client.get("/v1/items").json()] == ["Hello"]
        assert empty_client.delete(f"/v1/categories/{category['id']}").status_code == 404

    def test_settings(self, empty_client):
        assert empty_client.get("/v1/settings").json() == {"maxQuestionsPerSession": 10}
        response = empty_client.put("/v1/settings", json={"maxQuestionsPerSession": 3})
        assert response.json()["maxQuestionsPerSession"] == 3
        assert empty_client.put("/v1/settings", json={"maxQuestionsPerSession": 0}).status_code == 422

    def test_import_and_export(self, empty_client):
        response = empty_client.post(
            "/v1/library/import",
            json={
                "items": [
                    {"type": "WORD", "term": "Cat", "meanings": ["Kucing"]},
                    {"key": "Hello", "pairs": ["Halo"]},
                ],
                "categories": [{"id": "c1", "name": "Basics"}],
            },
        )
        assert response.json() == {"importedItems": 2, "importedCategories": 1}

        exported = empty_client.get("/v1/library/export").json()
        assert [item["key"] for item in exported["items"]] == ["Cat", "Hello"]
        assert exported["categories"] == [{"id": "c1", "name": "Basics"}]


class TestSessionRoutes:

    def seed_digits(self, client, count=4):
        for index in range(count):
            add_item(client, chr(ord("A") + index), [str(index + 1)])
        client.put("/v1/settings", json={"maxQuestionsPerSession": 4})

    def test_insufficient_pool_conflict(self, empty_client):
        self.seed_digits(empty_client, count=3)
        response = empty_client.post("/v1/sessions", json={})
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["found"] == 3
        assert detail["required"] == 4

    def test_full_normal_session(self, empty_client):
        self.seed_digits(empty_client)
        response = empty_client.post("/v1/sessions", json={"mode": "normal", "style": "aligned"})
        assert response.status_code == 201
        view = response.json()
        session_id = view["sessionId"]
        assert view["state"] == "PLAYING"
        assert view["totalQuestions"] == 4

        answers = {"A": "1", "B": "2", "C": "3", "D": "4"}
        for _ in range(4):
            question = view["question"]
            assert sorted(question["options"]) == ["1", "2", "3", "4"]
            view = empty_client.post(
                f"/v1/sessions/{session_id}/answer",
                json={"answer": answers[question["questionText"]]},
            ).json()
            assert view["state"] == "FEEDBACK"
            assert view["lastAnswer"]["isCorrect"] is True
            view = empty_client.post(f"/v1/sessions/{session_id}/advance").json()

        assert view["state"] == "FINISHED"
        assert view["summary"] == {"correct": 4, "incorrect": 0, "answered": 4, "accuracy": 100}
        items = empty_client.get("/v1/items").json()
        assert sum(item["stats"]["correct"] for item in items) == 4

    def test_exit_normal_session_drops_it(self, empty_client):
        self.seed_digits(empty_client)
        session_id = empty_client.post("/v1/sessions", json={}).json()["sessionId"]
        response = empty_client.post(f"/v1/sessions/{session_id}/exit")
        assert response.status_code == 200
        assert response.json()["summary"] is None
        assert empty_client.get(f"/v1/sessions/{session_id}").status_code == 404

    def test_exit_infinite_session_finishes(self, empty_client):
        self.seed_digits(empty_client)
        view = empty_client.post("/v1/sessions", json={"mode": "infinite"}).json()
        session_id = view["sessionId"]
        assert view["totalQuestions"] is None
        empty_client.post(f"/v1/sessions/{session_id}/answer", json={"answer": "wrong"})

        view = empty_client.post(f"/v1/sessions/{session_id}/exit").json()

        assert view["state"] == "FINISHED"
        assert view["summary"]["incorrect"] == 1
        assert empty_client.get(f"/v1/sessions/{session_id}").status_code == 404

    def test_match_on_multiple_choice_conflicts(self, empty_client):
        self.seed_digits(empty_client)
        session_id = empty_client.post("/v1/sessions", json={}).json()["sessionId"]
        response = empty_client.post(
            f"/v1/sessions/{session_id}/match", json={"leftId": "x", "rightId": "x"}
        )
        assert response.status_code == 409

    def test_unknown_session(self, client):
        response = client.get("/v1/sessions/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


class TestStorageFailures:

    @pytest.fixture
    def failing_client(self, empty_client):
        empty_client.app.state.library_service = LibraryService(ReadOnlyRepository())
        return empty_client

    def test_item_write_failure_is_service_unavailable(self, failing_client):
        response = failing_client.post("/v1/items", json={"key": "A", "pairs": ["1"]})
        assert response.status_code == 503
        assert "disk I/O error" in response.json()["detail"]

    def test_category_write_failure_is_service_unavailable(self, failing_client):
        response = failing_client.post("/v1/categories", json={"name": "Animals"})
        assert response.status_code == 503
