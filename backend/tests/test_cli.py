"""Tests for the device and database command-line tools."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from raincontrol import db_setup
from raincontrol.commands import CommandType, SQLCommandRepository
from raincontrol.database import prepare_schema
from raincontrol.nodemcu import cli
from raincontrol.system_settings import SQLSettingRepository


@pytest.fixture
def device_cli(monkeypatch, fake_gateway):
    monkeypatch.setattr(cli, "_create_gateway", lambda base_url=None: fake_gateway)
    lines: list[str] = []
    return fake_gateway, lines


def test_status_prints_summary(device_cli, make_status):
    gateway, lines = device_cli
    gateway.status = make_status(proximityAlert=True, proximityDistance=15)

    cli.main(["status"], print_fn=lines.append)

    output = "\n".join(lines)
    assert "ENABLED" in output
    assert "Servo:      90°" in output
    assert "ALERT at 15 cm" in output
    assert "Uptime:     1h 02m 03s" in output
    assert gateway.client.closed is True


def test_status_offline_exits(device_cli):
    with pytest.raises(SystemExit, match="offline"):
        cli.main(["status"], print_fn=lambda _: None)


def test_move_reports_gateway_detail(device_cli):
    gateway, lines = device_cli

    cli.main(["move", "45"], print_fn=lines.append)

    assert gateway.calls == [("move_actuator", (45,))]
    assert lines == ["move_actuator ok"]


def test_ping_reports_reachable_device(device_cli):
    gateway, lines = device_cli

    cli.main(["ping"], print_fn=lines.append)

    assert gateway.call_names == ["test_connection"]
    assert lines == ["Device at http://device.test is reachable."]


def test_ping_exits_when_device_unreachable(device_cli):
    gateway, _ = device_cli
    gateway.ok = False

    with pytest.raises(SystemExit, match="unreachable"):
        cli.main(["ping"], print_fn=lambda _: None)
    assert gateway.client.closed is True


def test_failed_command_exits_non_zero(device_cli):
    gateway, _ = device_cli
    gateway.ok = False

    with pytest.raises(SystemExit, match="timed out"):
        cli.main(["settings", "500", "90", "20"], print_fn=lambda _: None)
    assert gateway.calls == [("update_settings", (500, 90, 20))]


@pytest.fixture
def sql_ledger(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    prepare_schema(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    monkeypatch.setattr(db_setup, "is_database_configured", lambda: True)
    monkeypatch.setattr(db_setup, "get_engine", lambda: engine)
    monkeypatch.setattr(db_setup, "get_session_factory", lambda: factory)
    yield factory
    engine.dispose()


def test_seed_inserts_defaults_once(sql_ledger, capsys):
    db_setup.main(["seed"])
    assert "Seeded 4 setting(s)." in capsys.readouterr().out

    repository = SQLSettingRepository(sql_ledger)
    repository.upsert("RainThreshold", "700")

    db_setup.main(["seed"])
    assert "skipping" in capsys.readouterr().out
    assert repository.get("RainThreshold").value == "700"

    db_setup.main(["seed", "--force"])
    assert repository.get("RainThreshold").value == "500"
    assert repository.get("RainThreshold").description


def test_pending_lists_unfinished_commands(sql_ledger, capsys):
    repository = SQLCommandRepository(sql_ledger)
    stuck = repository.create_pending(
        CommandType.MOVE_ACTUATOR, '{"position": 30}', datetime.now(tz=UTC)
    )

    db_setup.main(["pending"])

    output = capsys.readouterr().out
    assert f"#{stuck.id} move_actuator" in output


def test_database_commands_require_configuration(monkeypatch):
    monkeypatch.setattr(db_setup, "is_database_configured", lambda: False)

    with pytest.raises(SystemExit, match="RAIN_DB_URL"):
        db_setup.main(["init"])
