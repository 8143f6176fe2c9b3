"""Server metrics: counters, gauges and histograms kept in a process-wide registry."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Tuple, Union

logger = logging.getLogger(__name__)

LabelSet = Tuple[Tuple[str, str], ...]
MetricKey = Tuple[str, LabelSet]

# Labels
CIPHER_LABEL = "cipher"
CURVE_LABEL = "curve"
TLS_PROTOCOL_VERSION_LABEL = "tls_protocol_version"
LIGHTWAY_PROTOCOL_VERSION_LABEL = "lightway_protocol_version"
FATAL_LABEL = "fatal"

_BOOL_LABELS = {True: "true", False: "false"}


class Counter:
    """A monotonically increasing count."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.value = 0

    def increment(self, amount: int) -> None:
        if amount < 0:
            raise ValueError("counter increment must not be negative")
        with self._lock:
            self.value += amount


class Gauge:
    """A value that may be set to anything."""

    def __init__(self) -> None:
        self.value = 0.0

    def set(self, value: float) -> None:
        self.value = float(value)


class Histogram:
    """A record of observed samples."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.values: List[float] = []

    def record(self, value: Union[float, timedelta]) -> None:
        if isinstance(value, timedelta):
            value = value.total_seconds()
        with self._lock:
            self.values.append(float(value))


def _key(name: str, labels: Dict[str, object]) -> MetricKey:
    return name, tuple(sorted((k, str(v)) for k, v in labels.items()))


class MetricsRegistry:
    """Holds metrics by name and label set."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[MetricKey, Counter] = {}
        self._gauges: Dict[MetricKey, Gauge] = {}
        self._histograms: Dict[MetricKey, Histogram] = {}

    def counter(self, name: str, **kwargs: object) -> Counter:
        with self._lock:
            return self._counters.setdefault(_key(name, kwargs), Counter())

    def gauge(self, name: str, **kwargs: object) -> Gauge:
        with self._lock:
            return self._gauges.setdefault(_key(name, kwargs), Gauge())

    def histogram(self, name: str, **kwargs: object) -> Histogram:
        with self._lock:
            return self._histograms.setdefault(_key(name, kwargs), Histogram())

    def snapshot(self) -> Dict[str, Dict[MetricKey, object]]:
        """Return a copy of every metric's current value, grouped by kind."""
        with self._lock:
            return {
                "counters": {k: c.value for k, c in self._counters.items()},
                "gauges": {k: g.value for k, g in self._gauges.items()},
                "histograms": {k: list(h.values) for k, h in self._histograms.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


REGISTRY = MetricsRegistry()


@dataclass
class ConnectionIntervalStats:
    five_minutes: int = field(default=0)
    fifteen_minutes: int = field(default=0)
    sixty_minutes: int = field(default=0)


# Connection lifecycle

def connection_accept_failed() -> None:
    """Calling accept on the listening socket failed."""
    REGISTRY.counter("conn_accept_failed").increment(1)


def connection_accept_proxy_header_failed() -> None:
    REGISTRY.counter("connection_accept_proxy_header_failed").increment(1)


def connection_create_failed(lw_protocol_version: object) -> None:
    REGISTRY.counter(
        "conn_create_failed",
        **{LIGHTWAY_PROTOCOL_VERSION_LABEL: str(lw_protocol_version)},
    ).increment(1)


def connection_created(lw_protocol_version: object) -> None:
    REGISTRY.counter(
        "conn_created",
        **{LIGHTWAY_PROTOCOL_VERSION_LABEL: str(lw_protocol_version)},
    ).increment(1)


def _tls_labels(cipher, curve, tls_protocol_version) -> Dict[str, str]:
    return {
        CIPHER_LABEL: cipher if cipher is not None else "unknown",
        CURVE_LABEL: curve if curve is not None else "unknown",
        TLS_PROTOCOL_VERSION_LABEL: str(tls_protocol_version),
    }


def connection_link_up(elapsed, cipher, curve, tls_protocol_version) -> None:
    """A connection reached the link-up state after `elapsed` seconds."""
    labels = _tls_labels(cipher, curve, tls_protocol_version)
    logger.debug("link up cipher=%s curve=%s after=%s", labels[CIPHER_LABEL], labels[CURVE_LABEL], elapsed)
    REGISTRY.histogram("to_link_up_time").record(elapsed)
    REGISTRY.counter("conn_link_up", **labels).increment(1)


def connection_online(elapsed, cipher, curve, tls_protocol_version) -> None:
    """A connection came online after `elapsed` seconds."""
    labels = _tls_labels(cipher, curve, tls_protocol_version)
    REGISTRY.counter("conn_online", **labels).increment(1)
    REGISTRY.histogram("to_online_time").record(elapsed)


def connection_rejected_no_free_ip() -> None:
    REGISTRY.counter("conn_rejected_no_free_ip").increment(1)


def connection_rejected_access_denied() -> None:
    REGISTRY.counter("conn_rejected_access_denied").increment(1)


def connection_aged_out() -> None:
    REGISTRY.counter("conn_aged_out").increment(1)


def connection_expired() -> None:
    REGISTRY.counter("user_auth_eviction").increment(1)


def connection_stale_closed() -> None:
    REGISTRY.counter("conn_stale_closed").increment(1)


def connection_client_closed() -> None:
    REGISTRY.counter("conn_client_closed").increment(1)


def connection_closed() -> None:
    REGISTRY.counter("conn_closed").increment(1)


def connection_key_update_start() -> None:
    REGISTRY.counter("key_update_start").increment(1)


def connection_key_update_complete() -> None:
    REGISTRY.counter("key_update_complete").increment(1)


# UDP session and version handling

def udp_conn_recovered_via_session(session: object) -> None:
    logger.debug("Recovered UDP session %r", session)
    REGISTRY.counter("udp_conn_recovered_via_session").increment(1)


def udp_session_rotation_attempted_via_replay() -> None:
    REGISTRY.counter("udp_session_rotation_attempted_via_replay").increment(1)


def udp_session_rotation_begin() -> None:
    logger.debug("Begin session rotation")
    REGISTRY.counter("udp_session_rotation_begin").increment(1)


def udp_session_rotation_finalized() -> None:
    logger.debug("Finalize session rotation")
    REGISTRY.counter("udp_session_rotation_finalized").increment(1)


def udp_bad_packet_version(version: object) -> None:
    REGISTRY.counter(
        "udp_bad_packet_version", **{LIGHTWAY_PROTOCOL_VERSION_LABEL: str(version)}
    ).increment(1)


def udp_rejected_session() -> None:
    REGISTRY.counter("udp_rejected_session").increment(1)


def udp_parse_wire_failed() -> None:
    REGISTRY.counter("udp_parse_wire_failed").increment(1)


def udp_no_header() -> None:
    REGISTRY.counter("udp_no_header").increment(1)


def udp_recv_truncated() -> None:
    REGISTRY.counter("udp_recv_truncated").increment(1)


def udp_recv_invalid_addr() -> None:
    REGISTRY.counter("udp_recv_invalid_addr").increment(1)


def udp_recv_missing_pktinfo() -> None:
    REGISTRY.counter("udp_recv_missing_pktinfo").increment(1)


def connection_tls_error(fatal: bool) -> None:
    REGISTRY.counter("conn_tls_error", **{FATAL_LABEL: _BOOL_LABELS[bool(fatal)]}).increment(1)


def connection_unknown_error(fatal: bool) -> None:
    REGISTRY.counter("conn_unknown_error", **{FATAL_LABEL: _BOOL_LABELS[bool(fatal)]}).increment(1)


# Tunnel

def tun_rejected_packet_invalid_state() -> None:
    REGISTRY.counter("tun_rejected_packet_invalid_state").increment(1)


def tun_rejected_packet_invalid_inside_packet() -> None:
    REGISTRY.counter("tun_rejected_packet_invalid_inside_packet").increment(1)


def tun_rejected_packet_invalid_other(fatal: bool) -> None:
    REGISTRY.counter(
        "tun_rejected_packet_invalid_other", **{FATAL_LABEL: _BOOL_LABELS[bool(fatal)]}
    ).increment(1)


def tun_rejected_packet_no_connection() -> None:
    REGISTRY.counter("tun_rejected_packet_no_connection").increment(1)


def tun_rejected_packet_no_client_ip() -> None:
    REGISTRY.counter("tun_rejected_packet_no_client_ip").increment(1)


def tun_from_client(size: int) -> None:
    """Bytes sent from a client to the tunnel device."""
    REGISTRY.counter("tun_from_client").increment(size)


def tun_to_client(size: int) -> None:
    """Bytes received from the tunnel device, destined for a client."""
    REGISTRY.counter("tun_to_client").increment(size)


def sessions_statistics(
    current_sessions: int,
    total_sessions: int,
    pending_session_id_rotations: int,
    active: ConnectionIntervalStats,
    standby: ConnectionIntervalStats,
) -> None:
    REGISTRY.gauge("sessions_current_online").set(current_sessions)
    REGISTRY.gauge("sessions_lifetime_total").set(total_sessions)
    REGISTRY.gauge("sessions_pending_id_rotations").set(pending_session_id_rotations)

    REGISTRY.gauge("sessions_active_5m").set(active.five_minutes)
    REGISTRY.gauge("sessions_active_15m").set(active.fifteen_minutes)
    REGISTRY.gauge("sessions_active_60m").set(active.sixty_minutes)
    REGISTRY.gauge("sessions_standby_5m").set(standby.five_minutes)
    REGISTRY.gauge("sessions_standby_15m").set(standby.fifteen_minutes)
    REGISTRY.gauge("sessions_standby_60m").set(standby.sixty_minutes)


def assigned_internal_ips(count: int) -> None:
    REGISTRY.gauge("assigned_internal_ips").set(count)