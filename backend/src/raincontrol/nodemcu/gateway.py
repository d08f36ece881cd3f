"""High-level device operations that never raise to their caller.

Every operation maps onto one HTTP call against the controller. Failures of
any kind (unreachable host, timeout, non-2xx status, malformed JSON, or an
unexpected exception) are folded into a :class:`GatewayResult` with
``ok=False`` or, for fetches, an absent value. Callers only ever learn whether
the call worked plus a detail string suitable for logs and audit records.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import ValidationError

from .client import DeviceErrorKind, DeviceRequestError, NodeMCUClient
from .models import ConnectionStatus, DeviceEvent, DeviceEventsPayload, DeviceStatus
from .utils import logger, suppress_insecure_request_warning

SERVO_MIN = 0
SERVO_MAX = 180
RAIN_THRESHOLD_MIN = 0
RAIN_THRESHOLD_MAX = 1024
PROXIMITY_THRESHOLD_MIN = 10
PROXIMITY_THRESHOLD_MAX = 200

STATUS_PATH = "api/status"
SERVO_MOVE_PATH = "api/servo/move"
SYSTEM_TOGGLE_PATH = "api/system/toggle"
SETTINGS_PATH = "api/settings"
EVENTS_PATH = "api/events"
HEALTH_PATH = "api/health"
PROXIMITY_ACK_PATH = "api/proximity/acknowledge"
PROXIMITY_SETTINGS_PATH = "api/proximity/settings"

T = TypeVar("T")


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of a device operation."""

    ok: bool
    detail: str
    error_kind: DeviceErrorKind | None = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, detail: str) -> GatewayResult:
        return cls(ok=True, detail=detail)

    @classmethod
    def failure(cls, kind: DeviceErrorKind, detail: str) -> GatewayResult:
        return cls(ok=False, detail=detail, error_kind=kind)


def _out_of_range(label: str, value: int, low: int, high: int) -> str | None:
    if low <= value <= high:
        return None
    return f"Invalid {label}: {value}. Must be between {low}-{high}"


class DeviceGateway:
    """Translate device capabilities into fail-closed HTTP calls."""

    def __init__(self, client: NodeMCUClient) -> None:
        self._client = client

    @property
    def client(self) -> NodeMCUClient:
        return self._client

    def get_status(self) -> DeviceStatus | None:
        """Return the current device snapshot, or None when offline."""
        logger.bind(device=self._client.base_url).debug("Fetching device status")
        status = self._fetch("get_status", STATUS_PATH, DeviceStatus.model_validate)
        if status is not None:
            logger.bind(
                raining=status.is_raining, proximity_alert=status.proximity_alert
            ).debug("Retrieved device status")
        return status

    def get_recent_events(self) -> list[DeviceEvent]:
        """Return the controller's own event buffer; empty when unavailable."""
        payload = self._fetch(
            "get_recent_events", EVENTS_PATH, DeviceEventsPayload.model_validate
        )
        if payload is None:
            return []
        logger.bind(count=len(payload.events)).info("Retrieved recent device events")
        return payload.events

    def move_actuator(self, position: int) -> GatewayResult:
        problem = _out_of_range("servo position", position, SERVO_MIN, SERVO_MAX)
        if problem:
            return self._reject("move_actuator", problem)
        return self._post(
            "move_actuator",
            SERVO_MOVE_PATH,
            {"position": str(position)},
            detail=f"Servo moved to {position}°",
        )

    def toggle_system(self) -> GatewayResult:
        return self._post("toggle_system", SYSTEM_TOGGLE_PATH, detail="System toggled")

    def update_settings(
        self, rain_threshold: int, normal_position: int, rain_position: int
    ) -> GatewayResult:
        checks = (
            _out_of_range(
                "rain threshold", rain_threshold, RAIN_THRESHOLD_MIN, RAIN_THRESHOLD_MAX
            ),
            _out_of_range("normal position", normal_position, SERVO_MIN, SERVO_MAX),
            _out_of_range("rain position", rain_position, SERVO_MIN, SERVO_MAX),
        )
        for problem in checks:
            if problem:
                return self._reject("update_settings", problem)
        return self._post(
            "update_settings",
            SETTINGS_PATH,
            {
                "rainThreshold": str(rain_threshold),
                "normalPosition": str(normal_position),
                "rainPosition": str(rain_position),
            },
            detail=(
                f"Settings updated: threshold={rain_threshold}, "
                f"normal={normal_position}°, rain={rain_position}°"
            ),
        )

    def acknowledge_proximity_alert(self) -> GatewayResult:
        return self._post(
            "acknowledge_proximity",
            PROXIMITY_ACK_PATH,
            detail="Proximity alert acknowledged",
        )

    def update_proximity_settings(self, threshold: int) -> GatewayResult:
        problem = _out_of_range(
            "proximity threshold",
            threshold,
            PROXIMITY_THRESHOLD_MIN,
            PROXIMITY_THRESHOLD_MAX,
        )
        if problem:
            return self._reject("update_proximity_settings", problem)
        return self._post(
            "update_proximity_settings",
            PROXIMITY_SETTINGS_PATH,
            {"threshold": str(threshold)},
            detail=f"Proximity threshold set to {threshold} cm",
        )

    def test_connection(self) -> bool:
        """Return True when the health endpoint answers with a 2xx status."""
        return self.get_connection_status().is_connected

    def get_connection_status(self) -> ConnectionStatus:
        """Probe the health endpoint and report latency and status code."""
        suppress_insecure_request_warning(self._client.verify_ssl)
        started = time.perf_counter()
        try:
            response = self._client.request("get", HEALTH_PATH)
        except DeviceRequestError as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.bind(kind=exc.kind.value).warning("Connection test failed: {}", exc)
            return ConnectionStatus(
                is_connected=False,
                response_time_ms=elapsed_ms if exc.status_code is not None else None,
                status_code=exc.status_code,
                last_checked=datetime.now(tz=UTC),
                error_message=str(exc),
            )
        except Exception as exc:  # noqa: BLE001
            logger.opt(exception=exc).error("Unexpected error probing device health")
            return ConnectionStatus(
                is_connected=False,
                last_checked=datetime.now(tz=UTC),
                error_message=str(exc),
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.bind(response_time_ms=round(elapsed_ms, 1)).info(
            "Connection test successful"
        )
        return ConnectionStatus(
            is_connected=True,
            response_time_ms=elapsed_ms,
            status_code=response.status_code,
            last_checked=datetime.now(tz=UTC),
        )

    def _fetch(
        self, operation: str, path: str, parse: Callable[[Any], T]
    ) -> T | None:
        suppress_insecure_request_warning(self._client.verify_ssl)
        try:
            payload = self._client.get_json(path)
            try:
                return parse(payload)
            except ValidationError as exc:
                raise DeviceRequestError(
                    DeviceErrorKind.DECODE,
                    f"Unexpected payload shape from {path}: {exc.error_count()} error(s)",
                ) from exc
        except DeviceRequestError as exc:
            logger.bind(operation=operation, kind=exc.kind.value).warning(
                "Device fetch failed: {}", exc
            )
            return None
        except Exception as exc:  # noqa: BLE001
            logger.bind(operation=operation).opt(exception=exc).error(
                "Unexpected error during device fetch"
            )
            return None

    def _post(
        self,
        operation: str,
        path: str,
        form: Mapping[str, str] | None = None,
        *,
        detail: str,
    ) -> GatewayResult:
        suppress_insecure_request_warning(self._client.verify_ssl)
        log = logger.bind(operation=operation, device=self._client.base_url)
        try:
            self._client.request("post", path, data=form)
        except DeviceRequestError as exc:
            log.bind(kind=exc.kind.value).warning("Device command failed: {}", exc)
            return GatewayResult.failure(exc.kind, str(exc))
        except Exception as exc:  # noqa: BLE001
            log.opt(exception=exc).error("Unexpected error during device command")
            return GatewayResult.failure(DeviceErrorKind.UNEXPECTED, str(exc))

        log.info(detail)
        return GatewayResult.success(detail)

    def _reject(self, operation: str, problem: str) -> GatewayResult:
        logger.bind(operation=operation).warning(problem)
        return GatewayResult.failure(DeviceErrorKind.INVALID_ARGUMENT, problem)


__all__ = [
    "DeviceGateway",
    "GatewayResult",
    "SERVO_MIN",
    "SERVO_MAX",
    "RAIN_THRESHOLD_MIN",
    "RAIN_THRESHOLD_MAX",
    "PROXIMITY_THRESHOLD_MIN",
    "PROXIMITY_THRESHOLD_MAX",
]
