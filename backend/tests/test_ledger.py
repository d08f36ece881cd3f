"""Tests for the command, log, and settings repositories."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from raincontrol.commands import (
    RESPONSE_MAX_LENGTH,
    CommandState,
    CommandTransitionError,
    CommandType,
    InMemoryCommandRepository,
    SQLCommandRepository,
)
from raincontrol.database import prepare_schema
from raincontrol.rain_logs import InMemoryLogRepository, SQLLogRepository, build_log_entry
from raincontrol.system_settings import InMemorySettingRepository, SQLSettingRepository

BASE_TIME = datetime(2025, 9, 6, 8, 0, tzinfo=UTC)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    prepare_schema(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False, future=True)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def command_repo(request, session_factory):
    if request.param == "memory":
        return InMemoryCommandRepository()
    return SQLCommandRepository(session_factory)


@pytest.fixture(params=["memory", "sql"])
def log_repo(request, session_factory):
    if request.param == "memory":
        return InMemoryLogRepository()
    return SQLLogRepository(session_factory)


@pytest.fixture(params=["memory", "sql"])
def setting_repo(request, session_factory):
    if request.param == "memory":
        return InMemorySettingRepository()
    return SQLSettingRepository(session_factory)


def test_command_transitions_exactly_once(command_repo):
    pending = command_repo.create_pending(
        CommandType.TOGGLE_SYSTEM, "{}", BASE_TIME
    )
    assert pending.state is CommandState.PENDING
    assert pending.executed_at is None
    assert pending.response is None

    finished = command_repo.complete(
        pending.id,
        success=True,
        response="System toggled",
        executed_at=BASE_TIME + timedelta(seconds=2),
    )
    assert finished.state is CommandState.SUCCEEDED
    assert finished.is_executed and finished.was_successful
    assert finished.created_at == BASE_TIME
    assert finished.executed_at == BASE_TIME + timedelta(seconds=2)

    with pytest.raises(CommandTransitionError):
        command_repo.complete(
            pending.id,
            success=False,
            response="again",
            executed_at=BASE_TIME + timedelta(seconds=3),
        )
    assert command_repo.get(pending.id).state is CommandState.SUCCEEDED


def test_complete_unknown_command_raises_key_error(command_repo):
    with pytest.raises(KeyError):
        command_repo.complete(
            999, success=False, response="missing", executed_at=BASE_TIME
        )


def test_command_response_is_truncated(command_repo):
    pending = command_repo.create_pending(CommandType.TOGGLE_SYSTEM, "{}", BASE_TIME)
    finished = command_repo.complete(
        pending.id, success=False, response="x" * 2000, executed_at=BASE_TIME
    )
    assert len(finished.response) == RESPONSE_MAX_LENGTH


def test_recent_commands_newest_first_and_truncated(command_repo):
    for offset in (5, 1, 3, 4, 2):
        command_repo.create_pending(
            CommandType.MOVE_ACTUATOR,
            f'{{"position": {offset}}}',
            BASE_TIME + timedelta(minutes=offset),
        )

    recent = command_repo.list_recent(3)

    assert [command.created_at for command in recent] == [
        BASE_TIME + timedelta(minutes=5),
        BASE_TIME + timedelta(minutes=4),
        BASE_TIME + timedelta(minutes=3),
    ]
    assert recent[0].payload == {"position": 5}


def test_list_pending_skips_finished_commands(command_repo):
    first = command_repo.create_pending(CommandType.TOGGLE_SYSTEM, "{}", BASE_TIME)
    second = command_repo.create_pending(
        CommandType.ACKNOWLEDGE_PROXIMITY, "{}", BASE_TIME + timedelta(seconds=1)
    )
    command_repo.complete(first.id, success=True, response="ok", executed_at=BASE_TIME)

    assert [command.id for command in command_repo.list_pending()] == [second.id]


def test_logs_newest_first_and_truncated(log_repo):
    for offset in range(6):
        log_repo.append(
            build_log_entry(
                event_type="rain_start" if offset % 2 else "rain_stop",
                analog_value=400 + offset,
                digital_value=0,
                is_raining=bool(offset % 2),
                actuator_position=offset * 10,
                distance=offset * 5 if offset else None,
                timestamp=BASE_TIME + timedelta(minutes=offset),
            )
        )

    recent = log_repo.list_recent(4)

    assert len(recent) == 4
    timestamps = [entry.timestamp for entry in recent]
    assert timestamps == sorted(timestamps, reverse=True)
    assert timestamps[0] == BASE_TIME + timedelta(minutes=5)
    assert recent[0].distance == 25
    assert recent[0].actuator_position == 50


def test_log_entry_limits_are_applied():
    entry = build_log_entry(
        event_type="e" * 80,
        analog_value=0,
        digital_value=0,
        is_raining=False,
        actuator_position=0,
        notes="n" * 500,
    )
    assert len(entry.event_type) == 50
    assert len(entry.notes) == 200
    assert entry.timestamp.tzinfo is not None


def test_setting_upsert_creates_then_overwrites(setting_repo):
    created = setting_repo.upsert(
        "RainThreshold",
        "500",
        description="Analog rain threshold",
        modified_at=BASE_TIME,
    )
    assert created.value == "500"

    updated = setting_repo.upsert(
        "RainThreshold", "650", modified_at=BASE_TIME + timedelta(hours=1)
    )

    assert updated.value == "650"
    assert updated.last_modified == BASE_TIME + timedelta(hours=1)
    assert updated.description == "Analog rain threshold"
    assert [setting.name for setting in setting_repo.list_all()] == ["RainThreshold"]
    assert setting_repo.get("Missing") is None


def test_prepare_schema_adds_distance_to_legacy_log_table():
    engine = create_engine("sqlite://", poolclass=StaticPool, future=True)
    with engine.begin() as connection:
        connection.execute(
            text(
                """
                CREATE TABLE rain_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp DATETIME NOT NULL,
                    event_type VARCHAR(50) NOT NULL,
                    analog_value INTEGER NOT NULL,
                    digital_value INTEGER NOT NULL,
                    is_raining BOOLEAN NOT NULL,
                    servo_position INTEGER NOT NULL,
                    notes VARCHAR(200)
                )
                """
            )
        )

    prepare_schema(engine)

    columns = {column["name"] for column in inspect(engine).get_columns("rain_logs")}
    assert "distance" in columns
    assert {"device_commands", "system_settings"} <= set(inspect(engine).get_table_names())
