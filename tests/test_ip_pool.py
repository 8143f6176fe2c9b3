import random
from ipaddress import IPv4Address, IPv4Network
from statistics import mean

import pytest

from lwserver.ip_pool import IpPool


def get_ip_pool():
    return IpPool("10.125.0.0/16", ["10.125.0.1", "10.125.0.2"])


def addrs(*values):
    return {IPv4Address(v) for v in values}


@pytest.mark.parametrize(
    "local_ip, dns_ip, expected_len",
    [("10.125.0.1", "10.125.0.1", 1), ("10.125.0.1", "10.125.0.2", 2)],
)
def test_used_ips_check(local_ip, dns_ip, expected_len):
    ip_range = IPv4Network("10.125.0.0/16")
    pool = IpPool(ip_range, [local_ip, dns_ip])
    host_count = sum(1 for _ in ip_range.hosts())
    assert len(pool.available_ips) == host_count - expected_len
    assert IPv4Address(local_ip) in pool.reserved_ips
    assert IPv4Address(dns_ip) in pool.reserved_ips


@pytest.mark.parametrize(
    "local_ip, dns_ip", [("10.125.0.1", "10.125.0.1"), ("10.125.0.1", "10.125.0.3")]
)
def test_alloc_ip(local_ip, dns_ip):
    ip_range = IPv4Network("10.125.0.0/16")
    pool = IpPool(ip_range, [local_ip, dns_ip])
    new_ip = pool.allocate_ip()
    assert new_ip in ip_range
    assert new_ip != IPv4Address(local_ip)
    assert new_ip != IPv4Address(dns_ip)


@pytest.mark.parametrize(
    "local_ip, dns_ip, available",
    [
        ("10.125.0.1", "10.125.0.1", 253),
        ("10.125.0.1", "10.125.0.3", 252),
        ("10.125.0.1", "8.8.8.8", 253),
    ],
)
def test_alloc_ip_exhaust(local_ip, dns_ip, available):
    pool = IpPool("10.125.0.0/24", [local_ip, dns_ip])
    allocated = [pool.allocate_ip() for _ in range(available)]
    assert None not in allocated
    assert pool.allocate_ip() is None


@pytest.mark.parametrize("alloc_times, free_times", [(2, 2), (3, 2)])
def test_free_ip(alloc_times, free_times):
    pool = get_ip_pool()
    pool_size = 65536 - 2
    reserved_ip_count = 2

    allocated = [pool.allocate_ip() for _ in range(alloc_times)]
    assert len(pool.available_ips) == pool_size - alloc_times - reserved_ip_count

    for _ in range(free_times):
        pool.free_ip(allocated.pop())

    assert (
        len(pool.available_ips)
        == pool_size - reserved_ip_count - alloc_times + free_times
    )


@pytest.mark.parametrize("ip", ["10.125.0.1", "10.125.0.2", "10.125.0.9", "192.168.1.1"])
def test_free_reserved_or_unallocated_ip(ip):
    pool = get_ip_pool()
    pool_size = 65536 - 2 - 2
    assert len(pool.available_ips) == pool_size
    pool.free_ip(ip)
    assert len(pool.available_ips) == pool_size


def test_double_free_is_ignored():
    pool = get_ip_pool()
    ip = pool.allocate_ip()
    pool.free_ip(ip)
    size = len(pool)
    pool.free_ip(ip)
    assert len(pool) == size


def test_split_subnet_initial_range_omits_network_and_reserved_addresses():
    pool = get_ip_pool()
    subpool = pool.split_subnet("10.125.0.0/29")
    assert len(subpool.available_ips) == 5
    assert set(subpool.available_ips) == addrs(
        "10.125.0.3", "10.125.0.4", "10.125.0.5", "10.125.0.6", "10.125.0.7"
    )
    assert subpool.reserved_ips == addrs("10.125.0.0", "10.125.0.1", "10.125.0.2")


def test_split_subnet_mid_range_includes_full_subrange():
    pool = get_ip_pool()
    subpool = pool.split_subnet("10.125.138.96/29")
    assert len(subpool.available_ips) == 8
    assert set(subpool.available_ips) == {
        IPv4Address(f"10.125.138.{n}") for n in range(96, 104)
    }
    assert subpool.reserved_ips == frozenset()


def test_split_subnet_final_range_omits_broadcast_address():
    pool = get_ip_pool()
    subpool = pool.split_subnet("10.125.255.248/29")
    assert len(subpool.available_ips) == 7
    assert set(subpool.available_ips) == {
        IPv4Address(f"10.125.255.{n}") for n in range(248, 255)
    }
    assert subpool.reserved_ips == addrs("10.125.255.255")


def test_split_subnet_removes_addresses_from_parent():
    pool = get_ip_pool()
    before = len(pool)
    subpool = pool.split_subnet("10.125.138.96/29")
    assert len(pool) == before - 8
    assert not set(pool.available_ips) & set(subpool.available_ips)


@pytest.mark.parametrize(
    "subnet, pool_size, ip",
    [
        ("10.125.0.0/29", 5, "10.125.0.0"),
        ("10.125.0.0/29", 5, "10.125.0.1"),
        ("10.125.0.0/29", 5, "10.125.0.2"),
        ("10.125.0.0/29", 5, "10.125.0.16"),
        ("10.125.29.192/29", 8, "10.125.0.2"),
        ("10.125.255.248/29", 7, "10.125.255.247"),
        ("10.125.255.248/29", 7, "10.125.255.255"),
    ],
)
def test_split_subnet_free_reserved_ips(subnet, pool_size, ip):
    pool = get_ip_pool()
    subpool = pool.split_subnet(subnet)
    assert len(subpool.available_ips) == pool_size
    pool.free_ip(ip)
    assert len(subpool.available_ips) == pool_size


@pytest.mark.parametrize(
    "subnet, pool_size",
    [("10.125.0.0/29", 5), ("10.125.98.192/29", 8), ("10.125.255.248/29", 7)],
)
def test_split_subnet_alloc_all_then_free_all(subnet, pool_size):
    pool = get_ip_pool()
    subpool = pool.split_subnet(subnet)
    assert len(subpool.available_ips) == pool_size

    ips = [subpool.allocate_ip() for _ in range(pool_size)]
    assert None not in ips
    assert subpool.allocate_ip() is None
    assert len(subpool.available_ips) == 0

    for ip in ips:
        subpool.free_ip(ip)
    assert len(subpool.available_ips) == pool_size


def test_lru_behaviour():
    pool = get_ip_pool()
    pool_size = len(pool.available_ips)

    ip = pool.allocate_ip()
    pool.free_ip(ip)

    other_ips = [pool.allocate_ip() for _ in range(pool_size - 1)]
    assert ip not in other_ips
    assert None not in other_ips
    assert len(other_ips) == pool_size - 1

    assert len(pool.available_ips) == 1
    assert pool.allocate_ip() == ip
    assert pool.allocate_ip() is None

    random.shuffle(other_ips)
    for other in other_ips:
        pool.free_ip(other)
    reallocated = [pool.allocate_ip() for _ in range(len(other_ips))]
    assert reallocated == other_ips


def test_initial_shuffle():
    pool = get_ip_pool()
    allocated = [int(pool.allocate_ip()) for _ in range(len(pool.available_ips))]
    deltas = [abs(b - a) for a, b in zip(allocated, allocated[1:])]
    assert len(deltas) == 65531
    assert mean(deltas) > 512.0


def test_seeded_rng_gives_reproducible_order():
    first = IpPool("10.125.0.0/24", [], rng=random.Random(7))
    second = IpPool("10.125.0.0/24", [], rng=random.Random(7))
    assert first.available_ips == second.available_ips
    assert len(first) == 254


def test_invalid_address_raises():
    pool = get_ip_pool()
    with pytest.raises(ValueError):
        pool.free_ip("not-an-ip")