"""Payload models for data reported by the rain controller."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _to_camel(string: str) -> str:
    first, *rest = string.split("_")
    return first + "".join(word.capitalize() for word in rest)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)


class DevicePayload(CamelModel):
    """Base for device JSON; keys are matched case-insensitively."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _match_keys(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        lookup = {
            name.replace("_", "").lower(): field.alias or _to_camel(name)
            for name, field in cls.model_fields.items()
        }
        return {
            lookup.get(str(key).replace("_", "").lower(), key): value
            for key, value in data.items()
        }


class DeviceStatus(DevicePayload):
    """Snapshot returned by ``GET /api/status``."""

    system_enabled: bool
    is_raining: bool
    rain_threshold: int = 0
    analog_value: int
    digital_value: int = 0
    servo_position: int
    status: str = ""
    last_rain_change: int = 0
    uptime: int = Field(default=0, description="Milliseconds since device boot.")
    ip: str = ""

    # Older firmware omits the proximity block entirely.
    proximity_alert: bool = False
    proximity_distance: int = 0
    current_distance: int = 0
    last_proximity_time: int = 0
    intruder_detected: bool = False
    proximity_threshold: int = 0


class DeviceEvent(DevicePayload):
    """Entry from the controller's own rolling event buffer."""

    timestamp: int = 0
    event: str = ""
    analog_value: int = 0
    is_raining: bool = False


class DeviceEventsPayload(DevicePayload):
    events: list[DeviceEvent] = Field(default_factory=list)


class ConnectionStatus(CamelModel):
    """Outcome of probing ``GET /api/health``."""

    is_connected: bool
    response_time_ms: float | None = None
    status_code: int | None = None
    last_checked: datetime
    error_message: str | None = None


__all__ = [
    "CamelModel",
    "ConnectionStatus",
    "DeviceEvent",
    "DeviceEventsPayload",
    "DeviceStatus",
]
