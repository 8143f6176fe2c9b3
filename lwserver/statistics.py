"""Periodic session and IP allocation statistics."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from lwserver import metrics
from lwserver.metrics import ConnectionIntervalStats

logger = logging.getLogger(__name__)

STATISTICS_REPORTING_INTERVAL = 30.0

FIVE_MINUTES = 5 * 60.0
FIFTEEN_MINUTES = 15 * 60.0
SIXTY_MINUTES = 60 * 60.0

_INTERVALS = (
    ("five_minutes", FIVE_MINUTES),
    ("fifteen_minutes", FIFTEEN_MINUTES),
    ("sixty_minutes", SIXTY_MINUTES),
)


@dataclass(frozen=True)
class ConnectionActivity:
    """Monotonic timestamps (seconds) of a connection's last activity."""

    last_outside_data_received: float
    last_data_traffic_from_peer: float


def calculate_session_stats(
    current_sessions: Iterable[ConnectionActivity], now: Optional[float] = None
) -> Tuple[ConnectionIntervalStats, ConnectionIntervalStats]:
    """Return (standby, active) counts for the 5, 15 and 60 minute windows."""
    if now is None:
        now = time.monotonic()

    standby = ConnectionIntervalStats()
    active = ConnectionIntervalStats()

    for activity in current_sessions:
        outside_age = now - activity.last_outside_data_received
        traffic_age = now - activity.last_data_traffic_from_peer
        for attr, window in _INTERVALS:
            # Receiving outside data without data traffic counts as standby.
            if outside_age <= window and traffic_age > window:
                setattr(standby, attr, getattr(standby, attr) + 1)
            if traffic_age <= window:
                setattr(active, attr, getattr(active, attr) + 1)

    return standby, active


def session_stats(
    current_sessions: Sequence[ConnectionActivity],
    total_sessions: int,
    pending_session_id_rotations: int,
) -> Tuple[ConnectionIntervalStats, ConnectionIntervalStats]:
    """Log and publish statistics for the online sessions; return (standby, active)."""
    sessions: List[ConnectionActivity] = list(current_sessions)
    standby, active = calculate_session_stats(sessions)
    current = len(sessions)

    logger.info(
        "Session Statistics total=%d current=%d standby=%s active=%s "
        "pending_session_id_rotations=%d",
        total_sessions,
        current,
        standby,
        active,
        pending_session_id_rotations,
    )
    metrics.sessions_statistics(
        current, total_sessions, pending_session_id_rotations, active, standby
    )
    return standby, active


def ip_manager_stats(ip_manager) -> Optional[int]:
    """Log and publish the number of allocated IPs; None when there is no manager."""
    if ip_manager is None:
        return None
    count = ip_manager.allocated_ips_count()
    logger.info("IP Statistics current=%d", count)
    metrics.assigned_internal_ips(count)
    return count