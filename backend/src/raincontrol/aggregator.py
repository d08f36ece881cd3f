"""Dashboard view combining live device status with recent log history."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from threading import Lock

from .nodemcu.gateway import DeviceGateway
from .nodemcu.models import DeviceStatus
from .nodemcu.utils import logger
from .rain_logs import LogEntry, LogRepository

DEFAULT_LOG_COUNT = 10

AlertHandler = Callable[[DeviceStatus], None]


@dataclass
class StatusCache:
    """Last successfully fetched status and when it was fetched."""

    status: DeviceStatus | None = None
    fetched_at: datetime | None = None
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def record(self, status: DeviceStatus, fetched_at: datetime) -> None:
        with self._lock:
            self.status = status
            self.fetched_at = fetched_at

    def snapshot(self) -> tuple[DeviceStatus | None, datetime | None]:
        with self._lock:
            return self.status, self.fetched_at

    @property
    def last_seen(self) -> datetime | None:
        with self._lock:
            return self.fetched_at


@dataclass(frozen=True)
class Dashboard:
    device_status: DeviceStatus | None
    recent_logs: list[LogEntry]
    is_online: bool
    last_seen: datetime | None = None


def acknowledge_alert(gateway: DeviceGateway, status: DeviceStatus) -> None:
    """Clear a reported proximity alert; failures are logged and dropped."""
    log = logger.bind(
        distance=status.proximity_distance, threshold=status.proximity_threshold
    )
    log.warning("Proximity alert reported by device")
    try:
        result = gateway.acknowledge_proximity_alert()
    except Exception as exc:  # noqa: BLE001
        log.opt(exception=exc).warning("Proximity acknowledgement raised")
        return
    if not result.ok:
        log.bind(detail=result.detail).warning("Proximity acknowledgement failed")


class StatusAggregator:
    """Read-only composition of device status and ledger history.

    ``on_alert`` receives the status whenever a fetch reports a proximity
    alert, once per fetch. The default acknowledges immediately through the
    aggregator's own gateway; the API passes a handler that defers the call
    until the response has been sent.
    """

    def __init__(
        self,
        gateway: DeviceGateway,
        logs: LogRepository,
        *,
        cache: StatusCache | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(tz=UTC),
        on_alert: AlertHandler | None = None,
    ) -> None:
        self._gateway = gateway
        self._logs = logs
        self._cache = cache if cache is not None else StatusCache()
        self._clock = clock
        self._on_alert = on_alert or (lambda status: acknowledge_alert(gateway, status))

    def get_dashboard(self, log_count: int = DEFAULT_LOG_COUNT) -> Dashboard:
        status = self._gateway.get_status()
        if status is not None:
            self._cache.record(status, self._clock())
            if status.proximity_alert:
                self._on_alert(status)
        else:
            logger.info("Device status unavailable; reporting offline")

        return Dashboard(
            device_status=status,
            recent_logs=self._logs.list_recent(log_count),
            is_online=status is not None,
            last_seen=self._cache.last_seen,
        )


__all__ = [
    "AlertHandler",
    "Dashboard",
    "DEFAULT_LOG_COUNT",
    "StatusAggregator",
    "StatusCache",
    "acknowledge_alert",
]
