"""Device command ledger: typed command variants and their audit records."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from threading import Lock
from typing import Any, ClassVar, Protocol

from pydantic import Field
from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from .database import get_engine, get_session_factory, is_database_configured
from .db_models import DeviceCommandModel
from .nodemcu.gateway import (
    PROXIMITY_THRESHOLD_MAX,
    PROXIMITY_THRESHOLD_MIN,
    RAIN_THRESHOLD_MAX,
    RAIN_THRESHOLD_MIN,
    SERVO_MAX,
    SERVO_MIN,
)
from .nodemcu.models import CamelModel
from .nodemcu.utils import truncate

RESPONSE_MAX_LENGTH = 500


class CommandType(str, Enum):
    MOVE_ACTUATOR = "move_actuator"
    TOGGLE_SYSTEM = "toggle_system"
    UPDATE_SETTINGS = "update_settings"
    ACKNOWLEDGE_PROXIMITY = "acknowledge_proximity"
    UPDATE_PROXIMITY_SETTINGS = "update_proximity_settings"


class CommandState(str, Enum):
    """Lifecycle of a command; ``pending`` moves to a terminal state once."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not CommandState.PENDING


class CommandTransitionError(RuntimeError):
    """Raised when a command that already finished is completed again."""


# ---------------------------------------------------------------------------
# Command variants


class MoveActuatorCommand(CamelModel):
    command_type: ClassVar[CommandType] = CommandType.MOVE_ACTUATOR

    position: int = Field(..., ge=SERVO_MIN, le=SERVO_MAX)


class ToggleSystemCommand(CamelModel):
    command_type: ClassVar[CommandType] = CommandType.TOGGLE_SYSTEM


class UpdateSettingsCommand(CamelModel):
    command_type: ClassVar[CommandType] = CommandType.UPDATE_SETTINGS

    rain_threshold: int = Field(..., ge=RAIN_THRESHOLD_MIN, le=RAIN_THRESHOLD_MAX)
    normal_position: int = Field(..., ge=SERVO_MIN, le=SERVO_MAX)
    rain_position: int = Field(..., ge=SERVO_MIN, le=SERVO_MAX)


class AcknowledgeProximityCommand(CamelModel):
    command_type: ClassVar[CommandType] = CommandType.ACKNOWLEDGE_PROXIMITY


class UpdateProximitySettingsCommand(CamelModel):
    command_type: ClassVar[CommandType] = CommandType.UPDATE_PROXIMITY_SETTINGS

    threshold: int = Field(..., ge=PROXIMITY_THRESHOLD_MIN, le=PROXIMITY_THRESHOLD_MAX)


Command = (
    MoveActuatorCommand
    | ToggleSystemCommand
    | UpdateSettingsCommand
    | AcknowledgeProximityCommand
    | UpdateProximitySettingsCommand
)


def serialize_command(command: Command) -> str:
    """Return the JSON payload stored alongside the command record."""
    return command.model_dump_json(by_alias=True)


# ---------------------------------------------------------------------------
# Ledger records


@dataclass(frozen=True)
class DeviceCommand:
    """Represents one issued command and its recorded outcome."""

    id: int | None
    command_type: CommandType
    command_data: str
    created_at: datetime
    state: CommandState = CommandState.PENDING
    executed_at: datetime | None = None
    response: str | None = None

    @property
    def is_executed(self) -> bool:
        return self.state.is_terminal

    @property
    def was_successful(self) -> bool:
        return self.state is CommandState.SUCCEEDED

    @property
    def payload(self) -> dict[str, Any]:
        return json.loads(self.command_data or "{}")


class CommandRepository(Protocol):
    """Storage abstraction for the command ledger."""

    def create_pending(
        self, command_type: CommandType, command_data: str, created_at: datetime
    ) -> DeviceCommand:
        ...

    def complete(
        self,
        command_id: int,
        *,
        success: bool,
        response: str,
        executed_at: datetime,
    ) -> DeviceCommand:
        ...

    def get(self, command_id: int) -> DeviceCommand | None:
        ...

    def list_recent(self, limit: int = 20) -> list[DeviceCommand]:
        ...

    def list_pending(self, limit: int = 100) -> list[DeviceCommand]:
        ...


def _terminal_state(success: bool) -> CommandState:
    return CommandState.SUCCEEDED if success else CommandState.FAILED


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class InMemoryCommandRepository(CommandRepository):
    """Lock-guarded in-memory ledger used when no database is configured."""

    def __init__(self) -> None:
        self._commands: dict[int, DeviceCommand] = {}
        self._lock = Lock()
        self._counter = 0

    def create_pending(
        self, command_type: CommandType, command_data: str, created_at: datetime
    ) -> DeviceCommand:
        with self._lock:
            self._counter += 1
            stored = DeviceCommand(
                id=self._counter,
                command_type=command_type,
                command_data=command_data,
                created_at=created_at,
            )
            self._commands[stored.id] = stored
            return stored

    def complete(
        self,
        command_id: int,
        *,
        success: bool,
        response: str,
        executed_at: datetime,
    ) -> DeviceCommand:
        with self._lock:
            current = self._commands.get(command_id)
            if current is None:
                raise KeyError(command_id)
            if current.state.is_terminal:
                raise CommandTransitionError(
                    f"Command {command_id} already finished as {current.state.value}"
                )
            finished = replace(
                current,
                state=_terminal_state(success),
                executed_at=executed_at,
                response=truncate(response, RESPONSE_MAX_LENGTH),
            )
            self._commands[command_id] = finished
            return finished

    def get(self, command_id: int) -> DeviceCommand | None:
        with self._lock:
            return self._commands.get(command_id)

    def list_recent(self, limit: int = 20) -> list[DeviceCommand]:
        with self._lock:
            ordered = sorted(
                self._commands.values(),
                key=lambda command: (command.created_at, command.id or 0),
                reverse=True,
            )
            return ordered[:limit]

    def list_pending(self, limit: int = 100) -> list[DeviceCommand]:
        with self._lock:
            pending = [
                command
                for command in self._commands.values()
                if command.state is CommandState.PENDING
            ]
        pending.sort(key=lambda command: (command.created_at, command.id or 0))
        return pending[:limit]


class SQLCommandRepository(CommandRepository):
    """SQLAlchemy-backed command ledger."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_record(row: DeviceCommandModel) -> DeviceCommand:
        return DeviceCommand(
            id=row.id,
            command_type=CommandType(row.command_type),
            command_data=row.command_data,
            created_at=_as_utc(row.created_at),
            state=CommandState(row.state),
            executed_at=_as_utc(row.executed_at),
            response=row.response,
        )

    def create_pending(
        self, command_type: CommandType, command_data: str, created_at: datetime
    ) -> DeviceCommand:
        model = DeviceCommandModel(
            command_type=command_type.value,
            command_data=command_data,
            state=CommandState.PENDING.value,
            created_at=created_at,
        )
        with self._session_factory() as session:
            session.add(model)
            session.commit()
            session.refresh(model)
            return self._to_record(model)

    def complete(
        self,
        command_id: int,
        *,
        success: bool,
        response: str,
        executed_at: datetime,
    ) -> DeviceCommand:
        with self._session_factory() as session:
            # Conditional update keeps the pending -> terminal move single-shot.
            result = session.execute(
                update(DeviceCommandModel)
                .where(
                    DeviceCommandModel.id == command_id,
                    DeviceCommandModel.state == CommandState.PENDING.value,
                )
                .values(
                    state=_terminal_state(success).value,
                    executed_at=executed_at,
                    response=truncate(response, RESPONSE_MAX_LENGTH),
                )
            )
            if result.rowcount == 0:
                session.rollback()
                existing = session.get(DeviceCommandModel, command_id)
                if existing is None:
                    raise KeyError(command_id)
                raise CommandTransitionError(
                    f"Command {command_id} already finished as {existing.state}"
                )
            session.commit()
            row = session.get(DeviceCommandModel, command_id, populate_existing=True)
            return self._to_record(row)

    def get(self, command_id: int) -> DeviceCommand | None:
        with self._session_factory() as session:
            row = session.get(DeviceCommandModel, command_id)
            return self._to_record(row) if row else None

    def list_recent(self, limit: int = 20) -> list[DeviceCommand]:
        with self._session_factory() as session:
            rows = (
                session.execute(
                    select(DeviceCommandModel)
                    .order_by(
                        DeviceCommandModel.created_at.desc(),
                        DeviceCommandModel.id.desc(),
                    )
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [self._to_record(row) for row in rows]

    def list_pending(self, limit: int = 100) -> list[DeviceCommand]:
        with self._session_factory() as session:
            rows = (
                session.execute(
                    select(DeviceCommandModel)
                    .where(DeviceCommandModel.state == CommandState.PENDING.value)
                    .order_by(DeviceCommandModel.created_at, DeviceCommandModel.id)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [self._to_record(row) for row in rows]


_DEFAULT_COMMAND_REPOSITORY = InMemoryCommandRepository()
_SQL_COMMAND_REPOSITORY: SQLCommandRepository | None = None


def _get_sql_command_repository() -> SQLCommandRepository:
    global _SQL_COMMAND_REPOSITORY
    if _SQL_COMMAND_REPOSITORY is None:
        _SQL_COMMAND_REPOSITORY = SQLCommandRepository(get_session_factory())
    return _SQL_COMMAND_REPOSITORY


def get_command_repository() -> CommandRepository:
    """Return the configured command repository."""
    if is_database_configured() and get_engine() is not None:
        try:
            return _get_sql_command_repository()
        except RuntimeError:
            return _DEFAULT_COMMAND_REPOSITORY
    return _DEFAULT_COMMAND_REPOSITORY


__all__ = [
    "AcknowledgeProximityCommand",
    "Command",
    "CommandRepository",
    "CommandState",
    "CommandTransitionError",
    "CommandType",
    "DeviceCommand",
    "InMemoryCommandRepository",
    "MoveActuatorCommand",
    "RESPONSE_MAX_LENGTH",
    "SQLCommandRepository",
    "ToggleSystemCommand",
    "UpdateProximitySettingsCommand",
    "UpdateSettingsCommand",
    "get_command_repository",
    "serialize_command",
]
