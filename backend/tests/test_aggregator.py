"""Tests for the dashboard status aggregator."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from raincontrol.aggregator import StatusAggregator, StatusCache
from raincontrol.rain_logs import InMemoryLogRepository, build_log_entry

BASE_TIME = datetime(2025, 9, 6, 8, 0, tzinfo=UTC)


def _seed_logs(count: int) -> InMemoryLogRepository:
    repo = InMemoryLogRepository()
    for offset in range(count):
        repo.append(
            build_log_entry(
                event_type="rain_start",
                analog_value=300,
                digital_value=0,
                is_raining=True,
                actuator_position=0,
                timestamp=BASE_TIME + timedelta(minutes=offset),
            )
        )
    return repo


def test_offline_device_yields_absent_status(fake_gateway):
    aggregator = StatusAggregator(fake_gateway, _seed_logs(3))

    dashboard = aggregator.get_dashboard()

    assert dashboard.is_online is False
    assert dashboard.device_status is None
    assert dashboard.last_seen is None
    assert len(dashboard.recent_logs) == 3
    assert "acknowledge_proximity" not in fake_gateway.call_names


def test_online_dashboard_limits_logs_to_ten_by_default(fake_gateway, make_status):
    fake_gateway.status = make_status()
    aggregator = StatusAggregator(fake_gateway, _seed_logs(15))

    dashboard = aggregator.get_dashboard()

    assert dashboard.is_online is True
    assert dashboard.device_status.servo_position == 90
    assert len(dashboard.recent_logs) == 10
    assert dashboard.recent_logs[0].timestamp == BASE_TIME + timedelta(minutes=14)
    assert fake_gateway.call_names == ["get_status"]


def test_proximity_alert_triggers_one_acknowledgement_per_fetch(fake_gateway, make_status):
    fake_gateway.status = make_status(proximityAlert=True, proximityDistance=22)
    aggregator = StatusAggregator(fake_gateway, InMemoryLogRepository())

    aggregator.get_dashboard()
    assert fake_gateway.call_names.count("acknowledge_proximity") == 1

    aggregator.get_dashboard()
    assert fake_gateway.call_names.count("acknowledge_proximity") == 2


def test_acknowledgement_failures_are_swallowed(fake_gateway, make_status):
    fake_gateway.status = make_status(proximityAlert=True)
    fake_gateway.ack_ok = False
    aggregator = StatusAggregator(fake_gateway, InMemoryLogRepository())

    dashboard = aggregator.get_dashboard()
    assert dashboard.is_online is True
    assert dashboard.device_status.proximity_alert is True

    fake_gateway.raise_on = "acknowledge_proximity"
    dashboard = aggregator.get_dashboard()
    assert dashboard.is_online is True


def test_cache_keeps_last_seen_but_never_stale_status(fake_gateway, make_status):
    seen_at = BASE_TIME + timedelta(minutes=30)
    cache = StatusCache()
    aggregator = StatusAggregator(
        fake_gateway, InMemoryLogRepository(), cache=cache, clock=lambda: seen_at
    )

    fake_gateway.status = make_status()
    online = aggregator.get_dashboard()
    assert online.last_seen == seen_at

    fake_gateway.status = None
    offline = aggregator.get_dashboard()

    assert offline.is_online is False
    assert offline.device_status is None
    assert offline.last_seen == seen_at
    assert cache.status is not None


def test_alert_handler_replaces_inline_acknowledgement(fake_gateway, make_status):
    fake_gateway.status = make_status(proximityAlert=True, proximityDistance=30)
    handed_off = []
    aggregator = StatusAggregator(
        fake_gateway, InMemoryLogRepository(), on_alert=handed_off.append
    )

    dashboard = aggregator.get_dashboard()
    aggregator.get_dashboard()

    assert dashboard.is_online is True
    assert [status.proximity_distance for status in handed_off] == [30, 30]
    assert fake_gateway.call_names == ["get_status", "get_status"]


def test_alert_handler_not_called_without_alert(fake_gateway, make_status):
    fake_gateway.status = make_status()
    handed_off = []
    aggregator = StatusAggregator(
        fake_gateway, InMemoryLogRepository(), on_alert=handed_off.append
    )

    aggregator.get_dashboard()

    assert handed_off == []
