"""Shared fakes for exercising the orchestrator, aggregator, and API."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import pytest

os.environ["RAIN_DB_MODE"] = "memory"
os.environ["RAIN_DB_URL"] = ""
os.environ.setdefault("RAIN_ENV_FILE", os.devnull)

from raincontrol.nodemcu.client import DeviceErrorKind  # noqa: E402
from raincontrol.nodemcu.gateway import GatewayResult  # noqa: E402
from raincontrol.nodemcu.models import (  # noqa: E402
    ConnectionStatus,
    DeviceEvent,
    DeviceStatus,
)


def status_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "systemEnabled": True,
        "isRaining": False,
        "rainThreshold": 500,
        "analogValue": 812,
        "digitalValue": 1,
        "servoPosition": 90,
        "status": "DRY",
        "lastRainChange": 120000,
        "uptime": 3_723_000,
        "ip": "192.168.1.100",
        "proximityAlert": False,
        "proximityDistance": 0,
        "currentDistance": 140,
        "lastProximityTime": 0,
        "intruderDetected": False,
        "proximityThreshold": 50,
    }
    payload.update(overrides)
    return payload


class FakeGateway:
    """Records every call and answers with scripted results."""

    def __init__(self) -> None:
        self.status: DeviceStatus | None = None
        self.ok = True
        self.ack_ok = True
        self.raise_on: str | None = None
        self.events: list[DeviceEvent] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.before_call = None
        self.client = SimpleNamespace(
            base_url="http://device.test",
            verify_ssl=False,
            closed=False,
        )
        self.client.close = lambda: setattr(self.client, "closed", True)

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def _command(self, name: str, *args: Any, ok: bool | None = None) -> GatewayResult:
        if self.before_call is not None:
            self.before_call(name)
        self.calls.append((name, args))
        if self.raise_on == name:
            raise RuntimeError("boom")
        succeeded = self.ok if ok is None else ok
        if succeeded:
            return GatewayResult.success(f"{name} ok")
        return GatewayResult.failure(DeviceErrorKind.TIMEOUT, f"{name} timed out")

    def get_status(self) -> DeviceStatus | None:
        self.calls.append(("get_status", ()))
        return self.status

    def get_recent_events(self) -> list[DeviceEvent]:
        self.calls.append(("get_recent_events", ()))
        return list(self.events)

    def get_connection_status(self) -> ConnectionStatus:
        self.calls.append(("get_connection_status", ()))
        return ConnectionStatus(
            is_connected=self.ok,
            response_time_ms=12.5 if self.ok else None,
            status_code=200 if self.ok else None,
            last_checked=datetime(2025, 9, 6, 12, 0, tzinfo=UTC),
            error_message=None if self.ok else "unreachable",
        )

    def test_connection(self) -> bool:
        self.calls.append(("test_connection", ()))
        return self.ok

    def move_actuator(self, position: int) -> GatewayResult:
        return self._command("move_actuator", position)

    def toggle_system(self) -> GatewayResult:
        return self._command("toggle_system")

    def update_settings(
        self, rain_threshold: int, normal_position: int, rain_position: int
    ) -> GatewayResult:
        return self._command(
            "update_settings", rain_threshold, normal_position, rain_position
        )

    def acknowledge_proximity_alert(self) -> GatewayResult:
        return self._command("acknowledge_proximity", ok=self.ack_ok and self.ok)

    def update_proximity_settings(self, threshold: int) -> GatewayResult:
        return self._command("update_proximity_settings", threshold)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_status():
    def _make(**overrides: Any) -> DeviceStatus:
        return DeviceStatus.model_validate(status_payload(**overrides))

    return _make


@pytest.fixture
def device_payload():
    return status_payload
