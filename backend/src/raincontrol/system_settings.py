"""Named key/value settings mirrored from the controller."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .database import get_engine, get_session_factory, is_database_configured
from .db_models import SystemSettingModel
from .nodemcu.utils import truncate

RAIN_THRESHOLD = "RainThreshold"
NORMAL_POSITION = "NormalPosition"
RAIN_POSITION = "RainPosition"
PROXIMITY_THRESHOLD = "ProximityThreshold"

DESCRIPTION_MAX_LENGTH = 200

DEFAULT_SETTINGS: dict[str, tuple[str, str]] = {
    RAIN_THRESHOLD: ("500", "Analog reading below which the sensor reports rain (0-1024)."),
    NORMAL_POSITION: ("90", "Servo angle while dry, in degrees (0-180)."),
    RAIN_POSITION: ("0", "Servo angle while raining, in degrees (0-180)."),
    PROXIMITY_THRESHOLD: ("50", "Distance in cm that raises a proximity alert (10-200)."),
}


@dataclass(frozen=True)
class Setting:
    name: str
    value: str
    last_modified: datetime
    description: str | None = None


class SettingRepository(Protocol):
    """Storage abstraction for named settings."""

    def get(self, name: str) -> Setting | None:
        ...

    def list_all(self) -> list[Setting]:
        ...

    def upsert(
        self,
        name: str,
        value: str,
        *,
        description: str | None = None,
        modified_at: datetime | None = None,
    ) -> Setting:
        ...


class InMemorySettingRepository(SettingRepository):
    def __init__(self) -> None:
        self._settings: dict[str, Setting] = {}
        self._lock = Lock()

    def get(self, name: str) -> Setting | None:
        with self._lock:
            return self._settings.get(name)

    def list_all(self) -> list[Setting]:
        with self._lock:
            return sorted(self._settings.values(), key=lambda item: item.name)

    def upsert(
        self,
        name: str,
        value: str,
        *,
        description: str | None = None,
        modified_at: datetime | None = None,
    ) -> Setting:
        with self._lock:
            existing = self._settings.get(name)
            if description is None and existing is not None:
                description = existing.description
            stored = Setting(
                name=name,
                value=value,
                last_modified=modified_at or datetime.now(tz=UTC),
                description=truncate(description, DESCRIPTION_MAX_LENGTH),
            )
            self._settings[name] = stored
            return stored


class SQLSettingRepository(SettingRepository):
    """SQLAlchemy-backed settings store."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_setting(row: SystemSettingModel) -> Setting:
        last_modified = row.last_modified
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=UTC)
        return Setting(
            name=row.name,
            value=row.value,
            last_modified=last_modified,
            description=row.description,
        )

    def get(self, name: str) -> Setting | None:
        with self._session_factory() as session:
            row = (
                session.execute(
                    select(SystemSettingModel).where(SystemSettingModel.name == name)
                )
                .scalars()
                .first()
            )
            return self._to_setting(row) if row else None

    def list_all(self) -> list[Setting]:
        with self._session_factory() as session:
            rows = (
                session.execute(
                    select(SystemSettingModel).order_by(SystemSettingModel.name)
                )
                .scalars()
                .all()
            )
            return [self._to_setting(row) for row in rows]

    def upsert(
        self,
        name: str,
        value: str,
        *,
        description: str | None = None,
        modified_at: datetime | None = None,
    ) -> Setting:
        timestamp = modified_at or datetime.now(tz=UTC)
        with self._session_factory() as session:
            instance = (
                session.execute(
                    select(SystemSettingModel).where(SystemSettingModel.name == name)
                )
                .scalars()
                .first()
            )
            if instance is None:
                instance = SystemSettingModel(
                    name=name,
                    value=value,
                    last_modified=timestamp,
                    description=truncate(description, DESCRIPTION_MAX_LENGTH),
                )
                session.add(instance)
            else:
                instance.value = value
                instance.last_modified = timestamp
                if description is not None:
                    instance.description = truncate(description, DESCRIPTION_MAX_LENGTH)
            session.commit()
            session.refresh(instance)
            return self._to_setting(instance)


_DEFAULT_SETTING_REPOSITORY = InMemorySettingRepository()
_SQL_SETTING_REPOSITORY: SQLSettingRepository | None = None


def _get_sql_setting_repository() -> SQLSettingRepository:
    global _SQL_SETTING_REPOSITORY
    if _SQL_SETTING_REPOSITORY is None:
        _SQL_SETTING_REPOSITORY = SQLSettingRepository(get_session_factory())
    return _SQL_SETTING_REPOSITORY


def get_setting_repository() -> SettingRepository:
    """Return the configured settings repository."""
    if is_database_configured() and get_engine() is not None:
        try:
            return _get_sql_setting_repository()
        except RuntimeError:
            return _DEFAULT_SETTING_REPOSITORY
    return _DEFAULT_SETTING_REPOSITORY


__all__ = [
    "DEFAULT_SETTINGS",
    "InMemorySettingRepository",
    "NORMAL_POSITION",
    "PROXIMITY_THRESHOLD",
    "RAIN_POSITION",
    "RAIN_THRESHOLD",
    "SQLSettingRepository",
    "Setting",
    "SettingRepository",
    "get_setting_repository",
]
