"""Client library for the rain/servo/proximity controller."""

from __future__ import annotations

from .client import DeviceErrorKind, DeviceRequestError, NodeMCUClient
from .config import Settings, settings
from .gateway import DeviceGateway, GatewayResult
from .models import ConnectionStatus, DeviceEvent, DeviceStatus

__all__ = [
    "ConnectionStatus",
    "DeviceErrorKind",
    "DeviceEvent",
    "DeviceGateway",
    "DeviceRequestError",
    "DeviceStatus",
    "GatewayResult",
    "NodeMCUClient",
    "Settings",
    "settings",
]
