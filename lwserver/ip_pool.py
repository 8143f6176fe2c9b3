"""Allocation of client addresses from an IPv4 pool."""

from __future__ import annotations

import logging
import random
from collections import deque
from ipaddress import IPv4Address, IPv4Network
from typing import Deque, FrozenSet, Iterable, Optional, Set, Tuple, Union

logger = logging.getLogger(__name__)

AddressLike = Union[IPv4Address, str, int]
NetworkLike = Union[IPv4Network, str]


def _network(value: NetworkLike) -> IPv4Network:
    return value if isinstance(value, IPv4Network) else IPv4Network(value, strict=False)


def _address(value: AddressLike) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


class IpPool:
    """Hands out addresses from a network, least recently used first.

    The network and broadcast addresses, and any reserved addresses,
    are never handed out. The initial order of free addresses is
    shuffled so that early allocations are hard to guess.
    """

    def __init__(
        self,
        ip_pool: NetworkLike,
        reserved_ips: Iterable[AddressLike] = (),
        rng: Optional[random.Random] = None,
    ) -> None:
        network = _network(ip_pool)
        reserved = {_address(ip) for ip in reserved_ips}
        reserved.add(network.network_address)
        reserved.add(network.broadcast_address)

        available = [ip for ip in network.hosts() if ip not in reserved]
        (rng or random.SystemRandom()).shuffle(available)

        self._reserved_ips: Set[IPv4Address] = reserved
        self._allocated_ips: Set[IPv4Address] = set()
        self._available_ips: Deque[IPv4Address] = deque(available)

    @classmethod
    def _from_parts(
        cls, reserved_ips: Set[IPv4Address], available_ips: Deque[IPv4Address]
    ) -> "IpPool":
        pool = cls.__new__(cls)
        pool._reserved_ips = reserved_ips
        pool._allocated_ips = set()
        pool._available_ips = available_ips
        return pool

    @property
    def reserved_ips(self) -> FrozenSet[IPv4Address]:
        """Addresses that must never be allocated from this pool."""
        return frozenset(self._reserved_ips)

    @property
    def available_ips(self) -> Tuple[IPv4Address, ...]:
        """Free addresses, in the order they will be allocated."""
        return tuple(self._available_ips)

    def __len__(self) -> int:
        return len(self._available_ips)

    def allocate_ip(self) -> Optional[IPv4Address]:
        """Take the least recently used free address, or None when exhausted."""
        if not self._available_ips:
            return None
        ip = self._available_ips.popleft()
        self._allocated_ips.add(ip)
        return ip

    def free_ip(self, ip: AddressLike) -> None:
        """Return an allocated address to the back of the free queue."""
        ip = _address(ip)
        if ip not in self._allocated_ips:
            logger.warning("Attempt to free unallocated IP address %s", ip)
            return
        self._allocated_ips.remove(ip)
        self._available_ips.append(ip)

    def split_subnet(self, subnet: NetworkLike) -> "IpPool":
        """Move the free addresses within `subnet` into a new pool and return it."""
        subnet = _network(subnet)
        taken: Deque[IPv4Address] = deque()
        kept: Deque[IPv4Address] = deque()
        for ip in self._available_ips:
            (taken if ip in subnet else kept).append(ip)
        self._available_ips = kept

        reserved = {ip for ip in self._reserved_ips if ip in subnet}
        return IpPool._from_parts(reserved, taken)