import pytest

from lwserver.metrics import REGISTRY, ConnectionIntervalStats
from lwserver.statistics import (
    ConnectionActivity,
    calculate_session_stats,
    ip_manager_stats,
    session_stats,
)

NOW = 1_000_000.0
MIN = 60.0
HOUR = 3600.0


@pytest.fixture(autouse=True)
def clean_registry():
    REGISTRY.reset()
    yield
    REGISTRY.reset()


def fmt(s: ConnectionIntervalStats) -> str:
    return f"{s.five_minutes}:{s.fifteen_minutes}:{s.sixty_minutes}"


def test_calculate_stats_empty():
    standby, active = calculate_session_stats([], NOW)
    assert f"{fmt(standby)}+{fmt(active)}" == "0:0:0+0:0:0"


@pytest.mark.parametrize(
    "outside_age, traffic_age, expected",
    [
        (0, 0, "0:0:0+1:1:1"),
        (0, 1 * MIN, "0:0:0+1:1:1"),
        (0, 6 * MIN, "1:0:0+0:1:1"),
        (0, 16 * MIN, "1:1:0+0:0:1"),
        (0, 61 * MIN, "1:1:1+0:0:0"),
        (1 * MIN, 2 * HOUR, "1:1:1+0:0:0"),
        (6 * MIN, 2 * HOUR, "0:1:1+0:0:0"),
        (16 * MIN, 2 * HOUR, "0:0:1+0:0:0"),
        (61 * MIN, 2 * HOUR, "0:0:0+0:0:0"),
        (1 * MIN, 1 * MIN, "0:0:0+1:1:1"),
        (6 * MIN, 6 * MIN, "0:0:0+0:1:1"),
        (16 * MIN, 16 * MIN, "0:0:0+0:0:1"),
        (61 * MIN, 61 * MIN, "0:0:0+0:0:0"),
    ],
)
def test_calculate_stats_aging(outside_age, traffic_age, expected):
    assert outside_age <= traffic_age
    sessions = [ConnectionActivity(NOW - outside_age, NOW - traffic_age)]
    standby, active = calculate_session_stats(sessions, NOW)
    assert f"{fmt(standby)}+{fmt(active)}" == expected


def test_session_stats_publishes_gauges():
    standby, active = session_stats([], 5, 2)
    assert fmt(standby) == "0:0:0"
    assert fmt(active) == "0:0:0"
    assert REGISTRY.gauge("sessions_current_online").value == 0
    assert REGISTRY.gauge("sessions_lifetime_total").value == 5
    assert REGISTRY.gauge("sessions_pending_id_rotations").value == 2


class _FakeIpManager:
    def allocated_ips_count(self):
        return 7


def test_ip_manager_stats():
    assert ip_manager_stats(_FakeIpManager()) == 7
    assert REGISTRY.gauge("assigned_internal_ips").value == 7


def test_ip_manager_stats_gone():
    assert ip_manager_stats(None) is None
    assert REGISTRY.snapshot()["gauges"] == {}