"""Command-line helpers for talking to the rain controller directly.

These calls bypass the command ledger: nothing is recorded. Use the HTTP API
when an audit trail is required.
"""

from __future__ import annotations

import argparse
import json
from collections.abc import Iterable

from .client import NodeMCUClient
from .config import settings
from .gateway import DeviceGateway, GatewayResult
from .utils import configure_logging, logger

configure_logging()


def _create_gateway(base_url: str | None = None) -> DeviceGateway:
    client = NodeMCUClient(
        base_url or settings.device_base_url,
        timeout=settings.request_timeout,
        verify_ssl=settings.verify_ssl,
    )
    return DeviceGateway(client)


def _dump_json(data: object, *, print_fn=print) -> None:
    formatted = json.dumps(data, indent=2, sort_keys=True, default=str)
    print_fn(formatted)


def _format_uptime(uptime_ms: int) -> str:
    seconds = max(uptime_ms, 0) // 1000
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes:02d}m {seconds:02d}s"


def show_status(gateway: DeviceGateway, *, as_json: bool = False, print_fn=print) -> None:
    """Print the device snapshot; exits non-zero when the device is offline."""
    status = gateway.get_status()
    if status is None:
        raise SystemExit(f"Device at {gateway.client.base_url} is offline.")

    if as_json:
        _dump_json(status.model_dump(by_alias=True), print_fn=print_fn)
        return

    print_fn(f"System:     {'ENABLED' if status.system_enabled else 'DISABLED'}")
    print_fn(f"Weather:    {'RAINING' if status.is_raining else 'DRY'}")
    print_fn(f"Sensor:     analog={status.analog_value} threshold={status.rain_threshold}")
    print_fn(f"Servo:      {status.servo_position}°")
    print_fn(f"Uptime:     {_format_uptime(status.uptime)}")
    if status.proximity_alert:
        print_fn(
            f"Proximity:  ALERT at {status.proximity_distance} cm "
            f"(threshold {status.proximity_threshold} cm)"
        )
    else:
        print_fn(f"Proximity:  clear (threshold {status.proximity_threshold} cm)")


def show_events(gateway: DeviceGateway, *, print_fn=print) -> None:
    events = gateway.get_recent_events()
    _dump_json(
        {
            "total": len(events),
            "events": [event.model_dump(by_alias=True) for event in events],
        },
        print_fn=print_fn,
    )


def show_health(gateway: DeviceGateway, *, print_fn=print) -> None:
    connection = gateway.get_connection_status()
    if not connection.is_connected:
        raise SystemExit(f"Health check failed: {connection.error_message}")
    print_fn(f"Device healthy ({connection.response_time_ms:.0f} ms)")


def ping(gateway: DeviceGateway, *, print_fn=print) -> None:
    """Exit non-zero unless the health endpoint answers."""
    if not gateway.test_connection():
        raise SystemExit(f"Device at {gateway.client.base_url} is unreachable.")
    print_fn(f"Device at {gateway.client.base_url} is reachable.")


def _report(result: GatewayResult, *, print_fn=print) -> None:
    if not result.ok:
        raise SystemExit(f"Device command failed: {result.detail}")
    print_fn(result.detail)


def main(argv: Iterable[str] | None = None, *, print_fn=print) -> None:
    parser = argparse.ArgumentParser(
        description="Query and drive the rain controller without the API server."
    )
    parser.add_argument("--url", help="Device base URL (defaults to RAIN_DEVICE_URL).")
    sub = parser.add_subparsers(dest="command", required=True)

    status_parser = sub.add_parser("status", help="Show the current device status.")
    status_parser.add_argument("--json", action="store_true", help="Print raw JSON.")
    sub.add_parser("events", help="Show the device's recent event buffer.")
    sub.add_parser("health", help="Probe the device health endpoint.")
    sub.add_parser("ping", help="Exit non-zero unless the device answers.")
    move_parser = sub.add_parser("move", help="Move the servo (0-180 degrees).")
    move_parser.add_argument("position", type=int)
    sub.add_parser("toggle", help="Toggle automatic rain handling on or off.")
    settings_parser = sub.add_parser("settings", help="Push rain settings to the device.")
    settings_parser.add_argument("threshold", type=int)
    settings_parser.add_argument("normal_position", type=int)
    settings_parser.add_argument("rain_position", type=int)
    sub.add_parser("proximity-ack", help="Clear a pending proximity alert.")
    proximity_parser = sub.add_parser(
        "proximity-threshold", help="Set the proximity alert distance (10-200 cm)."
    )
    proximity_parser.add_argument("threshold", type=int)

    args = parser.parse_args(list(argv) if argv is not None else None)
    gateway = _create_gateway(args.url)
    logger.bind(command=args.command, device=gateway.client.base_url).debug(
        "Running device CLI command"
    )

    try:
        if args.command == "status":
            show_status(gateway, as_json=args.json, print_fn=print_fn)
        elif args.command == "events":
            show_events(gateway, print_fn=print_fn)
        elif args.command == "health":
            show_health(gateway, print_fn=print_fn)
        elif args.command == "ping":
            ping(gateway, print_fn=print_fn)
        elif args.command == "move":
            _report(gateway.move_actuator(args.position), print_fn=print_fn)
        elif args.command == "toggle":
            _report(gateway.toggle_system(), print_fn=print_fn)
        elif args.command == "settings":
            _report(
                gateway.update_settings(
                    args.threshold, args.normal_position, args.rain_position
                ),
                print_fn=print_fn,
            )
        elif args.command == "proximity-ack":
            _report(gateway.acknowledge_proximity_alert(), print_fn=print_fn)
        elif args.command == "proximity-threshold":
            _report(gateway.update_proximity_settings(args.threshold), print_fn=print_fn)
        else:
            raise SystemExit(f"Unknown command: {args.command}")
    finally:
        gateway.client.close()


__all__ = ["main", "ping", "show_events", "show_health", "show_status"]
