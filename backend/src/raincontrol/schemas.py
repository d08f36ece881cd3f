"""Pydantic models for the rain control API."""

from __future__ import annotations

from datetime import datetime

from .commands import CommandState, CommandType, DeviceCommand
from .nodemcu.models import CamelModel, ConnectionStatus, DeviceEvent, DeviceStatus
from .rain_logs import LogEntry
from .system_settings import Setting


class MoveActuatorRequest(CamelModel):
    position: int


class SettingsUpdateRequest(CamelModel):
    rain_threshold: int
    normal_position: int
    rain_position: int


class ProximitySettingsRequest(CamelModel):
    threshold: int


class CommandResult(CamelModel):
    success: bool
    message: str


class RainLogEntry(CamelModel):
    id: int | None = None
    timestamp: datetime
    event_type: str
    analog_value: int
    digital_value: int
    is_raining: bool
    actuator_position: int
    distance: int | None = None
    notes: str | None = None

    @classmethod
    def from_entry(cls, entry: LogEntry) -> RainLogEntry:
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            event_type=entry.event_type,
            analog_value=entry.analog_value,
            digital_value=entry.digital_value,
            is_raining=entry.is_raining,
            actuator_position=entry.actuator_position,
            distance=entry.distance,
            notes=entry.notes,
        )


class CommandRecord(CamelModel):
    id: int | None = None
    command_type: CommandType
    command_data: str
    state: CommandState
    created_at: datetime
    executed_at: datetime | None = None
    is_executed: bool
    was_successful: bool
    response: str | None = None

    @classmethod
    def from_command(cls, command: DeviceCommand) -> CommandRecord:
        return cls(
            id=command.id,
            command_type=command.command_type,
            command_data=command.command_data,
            state=command.state,
            created_at=command.created_at,
            executed_at=command.executed_at,
            is_executed=command.is_executed,
            was_successful=command.was_successful,
            response=command.response,
        )


class DashboardResponse(CamelModel):
    device_status: DeviceStatus | None = None
    recent_logs: list[RainLogEntry]
    is_online: bool
    last_seen: datetime | None = None


class SettingRecord(CamelModel):
    name: str
    value: str
    last_modified: datetime
    description: str | None = None

    @classmethod
    def from_setting(cls, setting: Setting) -> SettingRecord:
        return cls(
            name=setting.name,
            value=setting.value,
            last_modified=setting.last_modified,
            description=setting.description,
        )


class DeviceEventsResponse(CamelModel):
    events: list[DeviceEvent]


class DeviceHealthResponse(ConnectionStatus):
    device_url: str
    last_seen: datetime | None = None
    last_status: DeviceStatus | None = None
