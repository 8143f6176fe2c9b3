"""Assignment of inside addresses to client connections, much like a DHCP server."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv4Network, IPv6Address, ip_address
from typing import Dict, Generic, Iterable, Mapping, Optional, Tuple, TypeVar, Union

from lwserver import metrics
from lwserver.ip_pool import IpPool

logger = logging.getLogger(__name__)

T = TypeVar("T")

AnyAddress = Union[IPv4Address, IPv6Address]


def _any_address(value: Union[AnyAddress, str, int]) -> AnyAddress:
    if isinstance(value, (IPv4Address, IPv6Address)):
        return value
    return ip_address(value)


def _ipv4(value: Union[IPv4Address, str, int]) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


@dataclass(frozen=True)
class InsideIpConfig:
    """Addresses sent to a client in its network configuration."""

    client_ip: IPv4Address
    server_ip: IPv4Address
    dns_ip: IPv4Address

    def __post_init__(self) -> None:
        for name in ("client_ip", "server_ip", "dns_ip"):
            object.__setattr__(self, name, _ipv4(getattr(self, name)))


class IpManager(Generic[T]):
    """Allocates inside addresses and tracks which connection holds each one.

    Connections arriving on a local address listed in ``ip_map`` are
    served from the subnet mapped to that address; all others use the
    remainder of the main pool.
    """

    def __init__(
        self,
        ip_pool: Union[IPv4Network, str],
        ip_map: Optional[Mapping[Union[AnyAddress, str], Union[IPv4Network, str]]],
        reserved_ips: Iterable[Union[IPv4Address, str, int]],
        static_ip_config: InsideIpConfig,
    ) -> None:
        pool = IpPool(ip_pool, reserved_ips)
        self._ip_map: Dict[AnyAddress, IpPool] = {
            _any_address(local): pool.split_subnet(subnet)
            for local, subnet in (ip_map or {}).items()
        }
        self._ip_pool = pool
        self._ip_to_conn: Dict[IPv4Address, T] = {}
        self._static_ip_config = static_ip_config
        self._lock = threading.Lock()

    def _pool_for(self, local_ip: AnyAddress) -> IpPool:
        return self._ip_map.get(local_ip, self._ip_pool)

    def allocated_ips_count(self) -> int:
        """Number of addresses currently assigned to connections."""
        with self._lock:
            return len(self._ip_to_conn)

    def inside_ip_config(self, ip: Union[IPv4Address, str, int]) -> InsideIpConfig:
        """The network configuration to send to the client holding `ip`."""
        return self._static_ip_config

    def alloc(
        self, conn: T, local_ip: Union[AnyAddress, str, int]
    ) -> Optional[Tuple[IPv4Address, InsideIpConfig]]:
        """Assign an address to `conn`; None when the relevant pool is exhausted."""
        local = _any_address(local_ip)
        with self._lock:
            ip = self._pool_for(local).allocate_ip()
            if ip is None:
                metrics.connection_rejected_no_free_ip()
                return None
            logger.info("Alloc ip=%s", ip)
            self._ip_to_conn[ip] = conn
        return ip, self.inside_ip_config(ip)

    def free(
        self, ip: Union[IPv4Address, str, int], local_ip: Union[AnyAddress, str, int]
    ) -> None:
        """Release `ip`, which was allocated for a connection on `local_ip`."""
        address = _ipv4(ip)
        local = _any_address(local_ip)
        with self._lock:
            logger.info("Free ip=%s", address)
            self._pool_for(local).free_ip(address)
            self._ip_to_conn.pop(address, None)

    def find_connection(self, ip: Union[IPv4Address, str, int]) -> Optional[T]:
        """The connection holding `ip`, if any."""
        address = _ipv4(ip)
        with self._lock:
            return self._ip_to_conn.get(address)