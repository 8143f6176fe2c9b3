# lwserver

This package holds components for the server side of a VPN service. Every
module is plain Python with no third-party dependencies.

## Modules

### `lwserver.ip_pool`

`IpPool(ip_pool, reserved_ips=(), rng=None)` hands out addresses from an IPv4
network, given as an `IPv4Network` or a string.

- The network address, the broadcast address and the reserved addresses are
  never allocated.
- Free addresses start in shuffled order. After that they are reused
  least-recently-used first.
- `allocate_ip()` returns the next free address, or `None` when the pool is
  exhausted.
- `free_ip(ip)` puts an allocated address at the back of the queue. Freeing
  an address that is not allocated logs a warning and does nothing.
- `split_subnet(subnet)` moves the free addresses inside `subnet` into a new
  pool and returns it. It also copies the reserved addresses that fall inside
  the subnet.
- The `available_ips` and `reserved_ips` properties, and `len()`, let you
  inspect the pool.

### `lwserver.ip_manager`

`IpManager(ip_pool, ip_map, reserved_ips, static_ip_config)` keeps one main
pool. For each local address in `ip_map` it also keeps a sub-pool split from
the main pool.

- `alloc(conn, local_ip)` draws an address from the sub-pool for `local_ip`,
  or from the main pool when `local_ip` has no sub-pool. It records `conn` as
  the owner and returns `(ip, InsideIpConfig)`. When the pool is exhausted it
  returns `None` and increments `conn_rejected_no_free_ip`.
- `free(ip, local_ip)` releases the address.
- `find_connection(ip)` returns the connection that owns `ip`.
- `allocated_ips_count()` returns the number of allocated addresses.
- `inside_ip_config(ip)` always returns the static `InsideIpConfig`, whose
  fields are `client_ip`, `server_ip` and `dns_ip`.

### `lwserver.connection_map`

`ConnectionMap` indexes values by peer socket address and by session id. A
value is any object with `socket_addr` and `session_id` attributes; session
ids are 8-byte `bytes`.

- `lookup(sock, session)` returns `Occupied(value)` when either key matches.
  Otherwise it returns a `VacantEntry`, whose `insert(value)` adds the value.
- `insert`, `remove`, `find_by`, `iter_connections` and `remove_connections`
  manage the entries.
- `update_socketaddr_for_connection(old, new)` moves a connection to a new
  peer address, for a client that has floated to another address.
  `update_session_id_for_connection(old, new)` re-keys it after a session-id
  rotation.
- Inserting with the empty session id (`EMPTY_SESSION_ID`) or the rejected
  one (`REJECTED_SESSION_ID`) raises `ReservedSessionIdError`.
- Inserting through a `VacantEntry` with a socket address other than the one
  looked up raises `InconsistentSocketAddrError`.
- Both errors are subclasses of `InsertError`.

### `lwserver.statistics`

`calculate_session_stats(sessions, now=None)` takes `ConnectionActivity`
records, each holding two monotonic timestamps in seconds. It returns
`(standby, active)` counts for the 5, 15 and 60 minute windows:

- A session is active in a window if it had data traffic within that window.
- A session is standby in a window if it received outside data within the
  window but had no data traffic in it.

`session_stats(...)` and `ip_manager_stats(ip_manager)` log these figures and
publish them as gauges.

### `lwserver.metrics`

`REGISTRY` is a process-wide `MetricsRegistry` of `Counter`, `Gauge` and
`Histogram` objects, keyed by name and labels.

- `REGISTRY.snapshot()` returns the current values.
- `REGISTRY.reset()` clears everything.
- Named helpers such as `connection_created(version)`, `connection_closed()`,
  `tun_from_client(size)`, `connection_tls_error(fatal)` and
  `sessions_statistics(...)` update the matching metrics.

### `lwserver.cmsg`

This module builds and parses socket ancillary-data buffers in the host's
`cmsghdr` layout.

- `BufferMut(size).builder().fill_next(level, type, data)` writes one message
  into a zero-filled buffer. `data` may be an `InPktinfo`, an `int` or bytes.
  It raises `CmsgError` when there is no room for the next header or for the
  data.
- `iter_messages(control)` yields `IpPktinfoMessage` or `UnknownMessage`
  objects from received bytes.
- `message_space(n)` gives the padded size of a message with `n` bytes of
  data.

## Example

```python
import ipaddress
from lwserver.ip_manager import InsideIpConfig, IpManager

config = InsideIpConfig(
    client_ip=ipaddress.IPv4Address("10.125.0.5"),
    server_ip=ipaddress.IPv4Address("10.125.0.6"),
    dns_ip=ipaddress.IPv4Address("10.125.0.1"),
)
manager = IpManager(
    ipaddress.IPv4Network("10.125.0.0/16"),
    {ipaddress.ip_address("192.0.2.10"): ipaddress.IPv4Network("10.125.2.0/28")},
    [config.client_ip, config.server_ip, config.dns_ip],
    config,
)
ip, inside_config = manager.alloc("connection-1", ipaddress.ip_address("192.0.2.10"))
assert manager.find_connection(ip) == "connection-1"
manager.free(ip, ipaddress.ip_address("192.0.2.10"))
```

## What this package does not do

This package is a set of components, not a running VPN server. It does not:

- open sockets or listen for TCP or UDP traffic;
- create or read a tunnel device;
- perform TLS or DTLS, or authenticate users;
- load configuration files.

It also provides no command-line program. The statistics functions compute
and publish figures when called, but nothing schedules them periodically.

## Running the tests

```
pip install .[test]
pytest
```