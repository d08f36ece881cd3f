"""Command execution pipeline: record, dispatch, book-keep, finish.

A command is written to the ledger as ``pending`` before the controller is
contacted, so a crash mid-call still leaves evidence behind. After exactly one
gateway call the command is moved to ``succeeded`` or ``failed``; this happens
even when dispatch or the follow-up bookkeeping raises. Bookkeeping (the
manual actuation log entry, settings write-back) is best effort: a failure
there is logged and appended to the response text but does not turn a
successful device call into a failed command.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import assert_never

from .commands import (
    AcknowledgeProximityCommand,
    Command,
    CommandRepository,
    DeviceCommand,
    MoveActuatorCommand,
    ToggleSystemCommand,
    UpdateProximitySettingsCommand,
    UpdateSettingsCommand,
    serialize_command,
)
from .nodemcu.gateway import DeviceGateway, GatewayResult
from .nodemcu.utils import logger
from .rain_logs import MANUAL_ACTUATION, LogRepository, build_log_entry
from .system_settings import (
    NORMAL_POSITION,
    PROXIMITY_THRESHOLD,
    RAIN_POSITION,
    RAIN_THRESHOLD,
    SettingRepository,
)

MANUAL_ACTUATION_NOTE = "manual command via dashboard"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class CommandOutcome:
    """Result handed back to the API layer."""

    success: bool
    command: DeviceCommand

    def __bool__(self) -> bool:
        return self.success


class CommandOrchestrator:
    """Owns the write path for commands and their derived records."""

    def __init__(
        self,
        gateway: DeviceGateway,
        *,
        commands: CommandRepository,
        logs: LogRepository,
        settings: SettingRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self._commands = commands
        self._logs = logs
        self._settings = settings
        self._clock = clock

    def execute(self, command: Command) -> CommandOutcome:
        record = self._commands.create_pending(
            command.command_type, serialize_command(command), self._clock()
        )
        log = logger.bind(command_id=record.id, command_type=command.command_type.value)
        log.info("Command recorded as pending")

        try:
            result = self._dispatch(command)
            success = result.ok
            response = result.detail
            if success:
                problems = self._apply_side_effects(command)
                if problems:
                    response = f"{response} (bookkeeping failed: {'; '.join(problems)})"
        except Exception as exc:  # noqa: BLE001
            log.opt(exception=exc).error("Command dispatch raised")
            success = False
            response = f"Error: {exc}"

        finished = self._commands.complete(
            record.id,
            success=success,
            response=response,
            executed_at=self._clock(),
        )
        log.bind(state=finished.state.value).info("Command finished")
        return CommandOutcome(success=success, command=finished)

    def _dispatch(self, command: Command) -> GatewayResult:
        match command:
            case MoveActuatorCommand(position=position):
                return self._gateway.move_actuator(position)
            case ToggleSystemCommand():
                return self._gateway.toggle_system()
            case UpdateSettingsCommand():
                return self._gateway.update_settings(
                    command.rain_threshold,
                    command.normal_position,
                    command.rain_position,
                )
            case AcknowledgeProximityCommand():
                return self._gateway.acknowledge_proximity_alert()
            case UpdateProximitySettingsCommand(threshold=threshold):
                return self._gateway.update_proximity_settings(threshold)
            case _:
                assert_never(command)

    def _apply_side_effects(self, command: Command) -> list[str]:
        """Run bookkeeping for a successful command; return failure messages."""
        steps: list[tuple[str, Callable[[], object]]] = []
        match command:
            case MoveActuatorCommand(position=position):
                steps.append(
                    (
                        "manual actuation log",
                        lambda: self._logs.append(
                            build_log_entry(
                                event_type=MANUAL_ACTUATION,
                                analog_value=0,
                                digital_value=0,
                                is_raining=False,
                                actuator_position=position,
                                notes=MANUAL_ACTUATION_NOTE,
                                timestamp=self._clock(),
                            )
                        ),
                    )
                )
            case UpdateSettingsCommand():
                for name, value in (
                    (RAIN_THRESHOLD, command.rain_threshold),
                    (NORMAL_POSITION, command.normal_position),
                    (RAIN_POSITION, command.rain_position),
                ):
                    steps.append((name, self._upsert_step(name, value)))
            case UpdateProximitySettingsCommand(threshold=threshold):
                steps.append(
                    (PROXIMITY_THRESHOLD, self._upsert_step(PROXIMITY_THRESHOLD, threshold))
                )
            case ToggleSystemCommand() | AcknowledgeProximityCommand():
                pass
            case _:
                assert_never(command)

        problems: list[str] = []
        for label, step in steps:
            try:
                step()
            except Exception as exc:  # noqa: BLE001
                logger.bind(step=label).opt(exception=exc).warning(
                    "Command bookkeeping failed"
                )
                problems.append(f"{label}: {exc}")
        return problems

    def _upsert_step(self, name: str, value: int) -> Callable[[], object]:
        return lambda: self._settings.upsert(
            name, str(value), modified_at=self._clock()
        )


__all__ = ["CommandOrchestrator", "CommandOutcome", "MANUAL_ACTUATION_NOTE"]
