"""Service helpers backing the FastAPI endpoints."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import partial

from .aggregator import (
    DEFAULT_LOG_COUNT,
    Dashboard,
    StatusAggregator,
    StatusCache,
    acknowledge_alert,
)
from .commands import Command, get_command_repository
from .nodemcu.client import NodeMCUClient
from .nodemcu.config import settings
from .nodemcu.gateway import DeviceGateway
from .nodemcu.models import ConnectionStatus, DeviceEvent, DeviceStatus
from .orchestrator import CommandOrchestrator, CommandOutcome
from .rain_logs import get_log_repository
from .system_settings import get_setting_repository

_STATUS_CACHE = StatusCache()


@contextmanager
def gateway_context() -> Iterator[DeviceGateway]:
    """Yield a gateway bound to a fresh client, closing it afterwards."""
    client = NodeMCUClient(
        settings.device_base_url,
        timeout=settings.request_timeout,
        verify_ssl=settings.verify_ssl,
    )
    try:
        yield DeviceGateway(client)
    finally:
        client.close()


def get_status_cache() -> StatusCache:
    return _STATUS_CACHE


def execute_command(command: Command) -> CommandOutcome:
    """Run ``command`` through the orchestrator against the configured device."""
    with gateway_context() as gateway:
        orchestrator = CommandOrchestrator(
            gateway,
            commands=get_command_repository(),
            logs=get_log_repository(),
            settings=get_setting_repository(),
        )
        return orchestrator.execute(command)


def acknowledge_with_new_gateway(status: DeviceStatus) -> None:
    """Acknowledge a proximity alert over a client of its own."""
    with gateway_context() as gateway:
        acknowledge_alert(gateway, status)


def build_dashboard(
    log_count: int = DEFAULT_LOG_COUNT,
    *,
    defer: Callable[..., object] | None = None,
) -> Dashboard:
    """Compose the dashboard.

    With ``defer`` (for example ``BackgroundTasks.add_task``) a proximity
    acknowledgement is handed off instead of delaying the response.
    """
    on_alert = partial(defer, acknowledge_with_new_gateway) if defer else None

    with gateway_context() as gateway:
        aggregator = StatusAggregator(
            gateway,
            get_log_repository(),
            cache=get_status_cache(),
            on_alert=on_alert,
        )
        return aggregator.get_dashboard(log_count)


def list_device_events() -> list[DeviceEvent]:
    with gateway_context() as gateway:
        return gateway.get_recent_events()


def check_device_connection() -> ConnectionStatus:
    with gateway_context() as gateway:
        return gateway.get_connection_status()
