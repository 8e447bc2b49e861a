"""FastAPI application wiring for the Memora quiz backend."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Response

from .domain import SessionConfig
from .errors import (
    InsufficientPoolError,
    PersistenceWriteFailure,
    QuestionGenerationFailure,
    SessionStateError,
)
from .models import (
    AnswerRequest,
    AppSettings,
    Category,
    CategoryCreateRequest,
    ItemCreateRequest,
    ItemUpdateRequest,
    LibraryExport,
    LibraryImportRequest,
    LibraryImportResponse,
    MatchRequest,
    MemoryItem,
    SessionStartRequest,
    SessionView,
    SettingsUpdateRequest,
)
from .services import LibraryService, QuizService
from .storage import InMemoryLibraryRepository, SqliteLibraryRepository, seed_if_empty


app = FastAPI(title="Memora", version="0.1.0")

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_library_service() -> LibraryService:
    return app.state.library_service


def get_quiz_service() -> QuizService:
    return app.state.quiz_service


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(level=os.getenv("MEMORA_LOG_LEVEL", "INFO").upper())
    session_config = SessionConfig(
        advance_cooldown_seconds=float(os.getenv("MEMORA_ADVANCE_COOLDOWN", "0.5")),
        matching_rounds=_env_flag("MEMORA_MATCHING_ROUNDS", True),
    )

    db_path = os.getenv("MEMORA_DB_PATH")
    executor = None
    if db_path:
        repository = SqliteLibraryRepository(Path(db_path))
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="memora-writer")
    else:
        repository = InMemoryLibraryRepository()
    if _env_flag("MEMORA_SEED", True):
        seed_if_empty(repository)

    app.state.repository = repository
    app.state.executor = executor
    app.state.session_config = session_config
    app.state.library_service = LibraryService(repository)
    app.state.quiz_service = QuizService(repository, config=session_config, executor=executor)
    logger.info("Memora started with %s", type(repository).__name__)


@app.on_event("shutdown")
def shutdown() -> None:
    executor = getattr(app.state, "executor", None)
    if executor is not None:
        executor.shutdown(wait=True)
    repository = getattr(app.state, "repository", None)
    if isinstance(repository, SqliteLibraryRepository):
        repository.close()


# region Library
@app.get("/v1/items", response_model=List[MemoryItem])
def list_items(service: LibraryService = Depends(get_library_service)) -> List[MemoryItem]:
    return service.list_items()


@app.post("/v1/items", response_model=MemoryItem, status_code=201)
def create_item(
    request: ItemCreateRequest, service: LibraryService = Depends(get_library_service)
) -> MemoryItem:
    try:
        return service.add_item(request)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.patch("/v1/items/{item_id}", response_model=MemoryItem)
def update_item(
    item_id: str,
    request: ItemUpdateRequest,
    service: LibraryService = Depends(get_library_service),
) -> MemoryItem:
    try:
        return service.update_item(item_id, request)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/v1/items/{item_id}/toggle", response_model=MemoryItem)
def toggle_item(item_id: str, service: LibraryService = Depends(get_library_service)) -> MemoryItem:
    try:
        return service.toggle_active(item_id)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc


@app.delete("/v1/items/{item_id}", status_code=204)
def delete_item(item_id: str, service: LibraryService = Depends(get_library_service)) -> Response:
    try:
        service.delete_item(item_id)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    return Response(status_code=204)


@app.get("/v1/categories", response_model=List[Category])
def list_categories(service: LibraryService = Depends(get_library_service)) -> List[Category]:
    return service.list_categories()


@app.post("/v1/categories", response_model=Category, status_code=201)
def create_category(
    request: CategoryCreateRequest, service: LibraryService = Depends(get_library_service)
) -> Category:
    try:
        return service.add_category(request.name)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/v1/categories/{category_id}", status_code=204)
def delete_category(
    category_id: str, service: LibraryService = Depends(get_library_service)
) -> Response:
    try:
        service.delete_category(category_id)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    return Response(status_code=204)


@app.get("/v1/settings", response_model=AppSettings)
def read_settings(service: LibraryService = Depends(get_library_service)) -> AppSettings:
    return service.get_settings()


@app.put("/v1/settings", response_model=AppSettings)
def write_settings(
    request: SettingsUpdateRequest, service: LibraryService = Depends(get_library_service)
) -> AppSettings:
    try:
        return service.update_settings(request)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/v1/library/export", response_model=LibraryExport)
def export_library(service: LibraryService = Depends(get_library_service)) -> LibraryExport:
    return service.export_library()


@app.post("/v1/library/import", response_model=LibraryImportResponse)
def import_library(
    request: LibraryImportRequest, service: LibraryService = Depends(get_library_service)
) -> LibraryImportResponse:
    try:
        item_count, category_count = service.import_library(request)
    except PersistenceWriteFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return LibraryImportResponse(imported_items=item_count, imported_categories=category_count)


# endregion


# region Sessions
@app.post("/v1/sessions", response_model=SessionView, status_code=201)
def start_session(
    request: SessionStartRequest, service: QuizService = Depends(get_quiz_service)
) -> SessionView:
    try:
        session = service.start_session(request)
    except InsufficientPoolError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "found": exc.found, "required": exc.required},
        ) from exc
    except QuestionGenerationFailure as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return session.view()


@app.get("/v1/sessions/{session_id}", response_model=SessionView)
def read_session(session_id: UUID, service: QuizService = Depends(get_quiz_service)) -> SessionView:
    try:
        return service.get(session_id).view()
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc


@app.post("/v1/sessions/{session_id}/answer", response_model=SessionView)
def answer_question(
    session_id: UUID, request: AnswerRequest, service: QuizService = Depends(get_quiz_service)
) -> SessionView:
    try:
        return service.answer(session_id, request.answer).view()
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    except SessionStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.post("/v1/sessions/{session_id}/match", response_model=SessionView)
def match_pair(
    session_id: UUID, request: MatchRequest, service: QuizService = Depends(get_quiz_service)
) -> SessionView:
    try:
        return service.match(session_id, request.left_id, request.right_id).view()
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    except SessionStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.post("/v1/sessions/{session_id}/advance", response_model=SessionView)
def advance_session(session_id: UUID, service: QuizService = Depends(get_quiz_service)) -> SessionView:
    try:
        return service.advance(session_id).view()
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc


@app.post("/v1/sessions/{session_id}/exit", response_model=SessionView)
def exit_session(session_id: UUID, service: QuizService = Depends(get_quiz_service)) -> SessionView:
    try:
        session, _ = service.exit(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0]) from exc
    return session.view()


# endregion


__all__ = ["app"]
