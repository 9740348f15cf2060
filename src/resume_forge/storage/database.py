"""Database handle shared by repositories, plus the per-user request context."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from sqlmodel import Session, select

from resume_forge.storage.alembic_runner import upgrade_head
from resume_forge.storage.common import build_sqlite_engine, utc_now
from resume_forge.storage.sqlmodel_models import DEFAULT_USER_ID, AppUser

Listener = Callable[[object], None]


@dataclass(frozen=True, slots=True)
class UserContext:
    """Identity every repository call is scoped to."""

    user_id: str = DEFAULT_USER_ID
    user_name: str = "Default User"


class Database:
    """Owns the SQLite engine and the persistence-layer event hooks.

    Repositories receive this handle explicitly instead of reaching for a
    module-level store, and listeners registered here are how record creation
    triggers downstream processing (see ``PipelineJobRepository.create_job``).
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        self._listeners: dict[str, list[Listener]] = {}
        self._listeners_lock = threading.Lock()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    def ensure_user(self, context: UserContext, *, initial_balance: int = 0) -> None:
        """Create the user row for ``context`` if it does not exist yet."""

        with Session(self.engine) as session:
            user = session.exec(
                select(AppUser).where(AppUser.user_id == context.user_id),
            ).one_or_none()
            if user is not None:
                return
            now = utc_now()
            session.add(
                AppUser(
                    user_id=context.user_id,
                    display_name=context.user_name,
                    token_balance=max(0, initial_balance),
                    created_at=now,
                    updated_at=now,
                ),
            )
            session.commit()

    def add_listener(self, event_name: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event_name``; returns a remover."""

        with self._listeners_lock:
            self._listeners.setdefault(event_name, []).append(listener)

        def _remove() -> None:
            with self._listeners_lock:
                listeners = self._listeners.get(event_name, [])
                if listener in listeners:
                    listeners.remove(listener)

        return _remove

    def emit(self, event_name: str, payload: object) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners.get(event_name, ()))
        for listener in listeners:
            listener(payload)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
