"""Connections indexed both by peer socket address and by session id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Generic, Hashable, Iterator, List, Protocol, TypeVar, Union

EMPTY_SESSION_ID = bytes(8)
REJECTED_SESSION_ID = b"\xff" * 8

_RESERVED_SESSION_IDS = frozenset({EMPTY_SESSION_ID, REJECTED_SESSION_ID})


class _Value(Protocol):
    @property
    def socket_addr(self) -> Hashable: ...

    @property
    def session_id(self) -> bytes: ...


V = TypeVar("V", bound=_Value)


def _is_reserved(session_id: bytes) -> bool:
    return bytes(session_id) in _RESERVED_SESSION_IDS


class InsertError(Exception):
    """A value could not be inserted into a connection map."""


class InconsistentSocketAddrError(InsertError):
    def __init__(self) -> None:
        super().__init__("Insert with different SocketAddr to initial lookup")


class ReservedSessionIdError(InsertError):
    def __init__(self) -> None:
        super().__init__("Insert using reserved SessionId")


@dataclass(frozen=True)
class Occupied(Generic[V]):
    """A lookup that found an existing connection."""

    value: V


class VacantEntry(Generic[V]):
    """A lookup that found nothing; insert through it to add the connection."""

    def __init__(self, connection_map: "ConnectionMap[V]", socket_addr: Hashable) -> None:
        self._map = connection_map
        self.socket_addr = socket_addr

    def insert(self, value: V) -> None:
        """Add `value`, which must have the socket address that was looked up."""
        if value.socket_addr != self.socket_addr:
            raise InconsistentSocketAddrError()
        if _is_reserved(value.session_id):
            raise ReservedSessionIdError()
        # The session id is taken from the value, not the lookup: a new
        # connection is only given its id after the lookup has missed.
        self._map._by_socket_addr[self.socket_addr] = value
        self._map._by_session_id[value.session_id] = value


class ConnectionMap(Generic[V]):
    """Maps socket addresses and session ids to connections."""

    def __init__(self) -> None:
        self._by_socket_addr: Dict[Hashable, V] = {}
        self._by_session_id: Dict[bytes, V] = {}

    def __len__(self) -> int:
        return len(self._by_socket_addr)

    def iter_connections(self) -> Iterator[V]:
        """Iterate over the connections known by socket address."""
        return iter(list(self._by_socket_addr.values()))

    def remove_connections(self) -> List[V]:
        """Empty the map, returning every connection it held."""
        self._by_session_id.clear()
        connections = list(self._by_socket_addr.values())
        self._by_socket_addr.clear()
        return connections

    def lookup(self, sock: Hashable, session: bytes) -> Union[Occupied[V], VacantEntry[V]]:
        """Find a connection by socket address, falling back to session id."""
        found = self._by_socket_addr.get(sock)
        if found is not None:
            return Occupied(found)
        found = self._by_session_id.get(session)
        if found is not None:
            return Occupied(found)
        return VacantEntry(self, sock)

    def find_by(self, sock: Hashable) -> V | None:
        """The connection at socket address `sock`, if any."""
        return self._by_socket_addr.get(sock)

    def update_socketaddr_for_connection(self, old_addr: Hashable, new_addr: Hashable) -> None:
        """Re-key the connection at `old_addr` to `new_addr`; nothing if absent."""
        value = self._by_socket_addr.pop(old_addr, None)
        if value is not None:
            self._by_socket_addr[new_addr] = value

    def update_session_id_for_connection(self, old: bytes, new: bytes) -> None:
        """Re-key the connection with session `old` to `new`; nothing if absent."""
        value = self._by_session_id.pop(old, None)
        if value is not None:
            self._by_session_id[new] = value

    def insert(self, value: V) -> None:
        """Add `value` under its own socket address and session id."""
        if _is_reserved(value.session_id):
            raise ReservedSessionIdError()
        self._by_socket_addr[value.socket_addr] = value
        self._by_session_id[value.session_id] = value

    def remove(self, value: V) -> None:
        """Drop the entries for `value`'s socket address and session id."""
        self._by_socket_addr.pop(value.socket_addr, None)
        self._by_session_id.pop(value.session_id, None)