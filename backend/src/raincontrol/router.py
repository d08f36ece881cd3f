"""API router exposing rain controller commands and history."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status

from . import schemas
from .commands import (
    AcknowledgeProximityCommand,
    MoveActuatorCommand,
    ToggleSystemCommand,
    UpdateProximitySettingsCommand,
    UpdateSettingsCommand,
    get_command_repository,
)
from .nodemcu.config import settings
from .nodemcu.gateway import (
    PROXIMITY_THRESHOLD_MAX,
    PROXIMITY_THRESHOLD_MIN,
    RAIN_THRESHOLD_MAX,
    RAIN_THRESHOLD_MIN,
    SERVO_MAX,
    SERVO_MIN,
)
from .orchestrator import CommandOutcome
from .rain_logs import list_recent_logs
from .services import (
    build_dashboard,
    check_device_connection,
    execute_command,
    get_status_cache,
    list_device_events,
)
from .system_settings import get_setting_repository

router = APIRouter(prefix="/api/rain-system", tags=["rain-system"])


def _require_range(label: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail=f"{label} must be between {low} and {high}.",
        )


def _command_result(outcome: CommandOutcome, fallback: str) -> schemas.CommandResult:
    return schemas.CommandResult(
        success=outcome.success,
        message=outcome.command.response or fallback,
    )


@router.get("/status", response_model=schemas.DashboardResponse)
def get_status(background_tasks: BackgroundTasks) -> schemas.DashboardResponse:
    dashboard = build_dashboard(defer=background_tasks.add_task)
    return schemas.DashboardResponse(
        device_status=dashboard.device_status,
        recent_logs=[
            schemas.RainLogEntry.from_entry(entry) for entry in dashboard.recent_logs
        ],
        is_online=dashboard.is_online,
        last_seen=dashboard.last_seen,
    )


@router.post("/system/toggle", response_model=schemas.CommandResult)
def toggle_system() -> schemas.CommandResult:
    outcome = execute_command(ToggleSystemCommand())
    return _command_result(outcome, "System toggle command sent")


@router.post("/settings/update", response_model=schemas.CommandResult)
def update_settings(payload: schemas.SettingsUpdateRequest) -> schemas.CommandResult:
    _require_range(
        "rainThreshold", payload.rain_threshold, RAIN_THRESHOLD_MIN, RAIN_THRESHOLD_MAX
    )
    _require_range("normalPosition", payload.normal_position, SERVO_MIN, SERVO_MAX)
    _require_range("rainPosition", payload.rain_position, SERVO_MIN, SERVO_MAX)

    outcome = execute_command(
        UpdateSettingsCommand(
            rain_threshold=payload.rain_threshold,
            normal_position=payload.normal_position,
            rain_position=payload.rain_position,
        )
    )
    return _command_result(outcome, "Settings update command sent")


@router.post("/actuator/move", response_model=schemas.CommandResult)
def move_actuator(payload: schemas.MoveActuatorRequest) -> schemas.CommandResult:
    _require_range("position", payload.position, SERVO_MIN, SERVO_MAX)
    outcome = execute_command(MoveActuatorCommand(position=payload.position))
    return _command_result(outcome, "Actuator move command sent")


@router.get("/logs", response_model=list[schemas.RainLogEntry])
def get_logs(
    count: Annotated[
        int,
        Query(ge=1, description="Maximum number of log entries to return."),
    ] = 50,
) -> list[schemas.RainLogEntry]:
    return [schemas.RainLogEntry.from_entry(entry) for entry in list_recent_logs(count)]


@router.get("/commands", response_model=list[schemas.CommandRecord])
def get_commands(
    count: Annotated[
        int,
        Query(ge=1, description="Maximum number of commands to return."),
    ] = 20,
) -> list[schemas.CommandRecord]:
    commands = get_command_repository().list_recent(count)
    return [schemas.CommandRecord.from_command(command) for command in commands]


@router.post("/proximity/acknowledge", response_model=schemas.CommandResult)
def acknowledge_proximity_alert() -> schemas.CommandResult:
    outcome = execute_command(AcknowledgeProximityCommand())
    return _command_result(outcome, "Proximity alert acknowledged")


@router.post("/proximity/settings", response_model=schemas.CommandResult)
def update_proximity_settings(
    payload: schemas.ProximitySettingsRequest,
) -> schemas.CommandResult:
    _require_range(
        "threshold", payload.threshold, PROXIMITY_THRESHOLD_MIN, PROXIMITY_THRESHOLD_MAX
    )
    outcome = execute_command(UpdateProximitySettingsCommand(threshold=payload.threshold))
    return _command_result(outcome, "Proximity settings updated")


@router.get("/settings", response_model=list[schemas.SettingRecord])
def list_settings() -> list[schemas.SettingRecord]:
    return [
        schemas.SettingRecord.from_setting(setting)
        for setting in get_setting_repository().list_all()
    ]


@router.get(
    "/device/events",
    response_model=schemas.DeviceEventsResponse,
    tags=["device"],
)
def get_device_events() -> schemas.DeviceEventsResponse:
    return schemas.DeviceEventsResponse(events=list_device_events())


@router.get(
    "/device/health",
    response_model=schemas.DeviceHealthResponse,
    tags=["device"],
)
def get_device_health() -> schemas.DeviceHealthResponse:
    connection = check_device_connection()
    last_status, last_seen = get_status_cache().snapshot()
    return schemas.DeviceHealthResponse(
        **connection.model_dump(),
        device_url=settings.device_base_url,
        last_seen=last_seen,
        last_status=last_status,
    )
