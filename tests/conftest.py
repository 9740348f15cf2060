"""Shared test fixtures."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import update as sa_update
from sqlmodel import Session, col

from resume_forge.ai.invoker import AiInvoker
from resume_forge.ai.providers import ChatRequest, ProviderError
from resume_forge.storage.common import to_db_datetime
from resume_forge.storage.database import Database, UserContext
from resume_forge.storage.sqlmodel_models import TrackedTask

Responder = Callable[[ChatRequest], str]


class ScriptedProvider:
    """In-memory provider; each call is answered by ``responder``."""

    def __init__(self, name: str, responder: Responder) -> None:
        self.name = name
        self.responder = responder
        self.requests: list[ChatRequest] = []
        self.closed = False
        self._lock = threading.Lock()

    def complete(self, request: ChatRequest) -> str:
        with self._lock:
            self.requests.append(request)
        return self.responder(request)

    def close(self) -> None:
        self.closed = True


def failing(message: str) -> Responder:
    def _respond(_: ChatRequest) -> str:
        raise ProviderError("fake", message)

    return _respond


def replying(payload: dict[str, object] | str) -> Responder:
    text = payload if isinstance(payload, str) else json.dumps(payload)

    def _respond(_: ChatRequest) -> str:
        return text

    return _respond


@pytest.fixture()
def context() -> UserContext:
    return UserContext(user_id="user-a", user_name="User A")


@pytest.fixture()
def database(tmp_path: Path, context: UserContext):
    db = Database(tmp_path / "resume-forge.db")
    db.init_schema()
    db.ensure_user(context, initial_balance=100)
    try:
        yield db
    finally:
        db.close()


def make_invoker(responder: Responder, fallback: Responder | None = None) -> AiInvoker:
    return AiInvoker(
        ScriptedProvider("primary", responder),
        ScriptedProvider("fallback", fallback) if fallback is not None else None,
    )


def backdate_task(database: Database, task_id: str, created_at: datetime) -> None:
    with Session(database.engine) as session:
        session.exec(
            sa_update(TrackedTask)
            .where(col(TrackedTask.task_id) == task_id)
            .values(created_at=to_db_datetime(created_at)),
        )
        session.commit()
