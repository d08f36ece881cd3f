"""Append-only log of rain, actuator, and proximity observations."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from threading import Lock
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .database import get_engine, get_session_factory, is_database_configured
from .db_models import RainLogModel
from .nodemcu.utils import truncate

EVENT_TYPE_MAX_LENGTH = 50
NOTES_MAX_LENGTH = 200

MANUAL_ACTUATION = "manual_actuation"


@dataclass(frozen=True)
class LogEntry:
    """An immutable fact about observed or actuated controller state."""

    id: int | None
    timestamp: datetime
    event_type: str
    analog_value: int
    digital_value: int
    is_raining: bool
    actuator_position: int
    distance: int | None = None
    notes: str | None = None


class LogRepository(Protocol):
    def append(self, entry: LogEntry) -> LogEntry:
        ...

    def list_recent(self, limit: int = 50) -> list[LogEntry]:
        ...


class InMemoryLogRepository(LogRepository):
    def __init__(self) -> None:
        self._entries: list[LogEntry] = []
        self._lock = Lock()
        self._counter = 0

    def append(self, entry: LogEntry) -> LogEntry:
        with self._lock:
            self._counter += 1
            stored = replace(entry, id=self._counter)
            self._entries.append(stored)
            return stored

    def list_recent(self, limit: int = 50) -> list[LogEntry]:
        with self._lock:
            ordered = sorted(
                self._entries,
                key=lambda entry: (entry.timestamp, entry.id or 0),
                reverse=True,
            )
            return ordered[:limit]


class SQLLogRepository(LogRepository):
    """SQLAlchemy-backed rain log."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_entry(row: RainLogModel) -> LogEntry:
        timestamp = row.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return LogEntry(
            id=row.id,
            timestamp=timestamp,
            event_type=row.event_type,
            analog_value=row.analog_value,
            digital_value=row.digital_value,
            is_raining=row.is_raining,
            actuator_position=row.servo_position,
            distance=row.distance,
            notes=row.notes,
        )

    def append(self, entry: LogEntry) -> LogEntry:
        model = RainLogModel(
            timestamp=entry.timestamp,
            event_type=entry.event_type,
            analog_value=entry.analog_value,
            digital_value=entry.digital_value,
            is_raining=entry.is_raining,
            servo_position=entry.actuator_position,
            distance=entry.distance,
            notes=entry.notes,
        )
        with self._session_factory() as session:
            session.add(model)
            session.commit()
            session.refresh(model)
            return self._to_entry(model)

    def list_recent(self, limit: int = 50) -> list[LogEntry]:
        with self._session_factory() as session:
            rows = (
                session.execute(
                    select(RainLogModel)
                    .order_by(RainLogModel.timestamp.desc(), RainLogModel.id.desc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [self._to_entry(row) for row in rows]


_DEFAULT_LOG_REPOSITORY = InMemoryLogRepository()
_SQL_LOG_REPOSITORY: SQLLogRepository | None = None


def _get_sql_log_repository() -> SQLLogRepository:
    global _SQL_LOG_REPOSITORY
    if _SQL_LOG_REPOSITORY is None:
        _SQL_LOG_REPOSITORY = SQLLogRepository(get_session_factory())
    return _SQL_LOG_REPOSITORY


def get_log_repository() -> LogRepository:
    """Return the configured rain log repository."""
    if is_database_configured() and get_engine() is not None:
        try:
            return _get_sql_log_repository()
        except RuntimeError:
            return _DEFAULT_LOG_REPOSITORY
    return _DEFAULT_LOG_REPOSITORY


def build_log_entry(
    *,
    event_type: str,
    analog_value: int,
    digital_value: int,
    is_raining: bool,
    actuator_position: int,
    distance: int | None = None,
    notes: str | None = None,
    timestamp: datetime | None = None,
) -> LogEntry:
    """Return an unsaved entry with column limits applied."""
    return LogEntry(
        id=None,
        timestamp=timestamp or datetime.now(tz=UTC),
        event_type=event_type[:EVENT_TYPE_MAX_LENGTH],
        analog_value=analog_value,
        digital_value=digital_value,
        is_raining=is_raining,
        actuator_position=actuator_position,
        distance=distance,
        notes=truncate(notes, NOTES_MAX_LENGTH),
    )


def list_recent_logs(limit: int = 50) -> list[LogEntry]:
    """Return the most recent log entries, newest first."""
    return get_log_repository().list_recent(limit)


__all__ = [
    "LogEntry",
    "LogRepository",
    "InMemoryLogRepository",
    "SQLLogRepository",
    "MANUAL_ACTUATION",
    "build_log_entry",
    "get_log_repository",
    "list_recent_logs",
]
