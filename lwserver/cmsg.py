"""Building and parsing socket control-message (ancillary data) buffers.

The layout follows the host's ``struct cmsghdr``: a ``size_t`` length
followed by an ``int`` level and an ``int`` type, with each header and
its data padded to the alignment of ``size_t``.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Iterator, Optional, Union

SOL_IP = 0
IP_PKTINFO = 8

_HEADER = struct.Struct("@Nii")
_INT = struct.Struct("@i")
ALIGNMENT = struct.calcsize("@N")


def _align(length: int) -> int:
    return (length + ALIGNMENT - 1) & ~(ALIGNMENT - 1)


HEADER_SIZE = _align(_HEADER.size)


class CmsgError(OSError):
    """A control-message buffer could not be built or parsed."""


def message_space(data_size: int) -> int:
    """Bytes a control message with `data_size` bytes of data occupies, padding included."""
    return HEADER_SIZE + _align(data_size)


def _message_len(data_size: int) -> int:
    return HEADER_SIZE + data_size


@dataclass(frozen=True)
class InPktinfo:
    """The ``in_pktinfo`` structure carried by ``IP_PKTINFO`` messages."""

    ifindex: int = 0
    spec_dst: IPv4Address = IPv4Address(0)
    addr: IPv4Address = IPv4Address(0)

    _STRUCT = struct.Struct("@i4s4s")

    def __post_init__(self) -> None:
        for name in ("spec_dst", "addr"):
            value = getattr(self, name)
            if not isinstance(value, IPv4Address):
                object.__setattr__(self, name, IPv4Address(value))

    def pack(self) -> bytes:
        """Encode as the C structure; addresses are in network byte order."""
        return self._STRUCT.pack(self.ifindex, self.spec_dst.packed, self.addr.packed)

    @classmethod
    def unpack(cls, data: bytes) -> "InPktinfo":
        """Decode from the C structure."""
        if len(data) != cls._STRUCT.size:
            raise CmsgError(
                f"in_pktinfo needs {cls._STRUCT.size} bytes, got {len(data)}"
            )
        ifindex, spec_dst, addr = cls._STRUCT.unpack(bytes(data))
        return cls(ifindex, IPv4Address(spec_dst), IPv4Address(addr))


@dataclass(frozen=True)
class IpPktinfoMessage:
    """An ``IP_PKTINFO`` control message."""

    pktinfo: InPktinfo


@dataclass(frozen=True)
class UnknownMessage:
    """Any other control message, kept as raw data."""

    level: int
    type: int
    data: bytes


Message = Union[IpPktinfoMessage, UnknownMessage]


def _next_header(control: Union[bytes, bytearray], offset: int) -> Optional[int]:
    (cmsg_len, _, _) = _HEADER.unpack_from(control, offset)
    if cmsg_len < _HEADER.size:
        return None
    nxt = offset + _align(cmsg_len)
    if nxt + _HEADER.size > len(control):
        return None
    (next_len, _, _) = _HEADER.unpack_from(control, nxt)
    if _align(next_len) > len(control) - nxt:
        return None
    return nxt


def iter_messages(control: Union[bytes, bytearray, memoryview]) -> Iterator[Message]:
    """Iterate over the control messages in the received bytes `control`."""
    control = bytes(control)
    cursor: Optional[int] = 0 if len(control) >= _HEADER.size else None
    while cursor is not None:
        cmsg_len, level, kind = _HEADER.unpack_from(control, cursor)
        data = control[cursor + HEADER_SIZE : cursor + max(cmsg_len, HEADER_SIZE)]
        if (level, kind) == (SOL_IP, IP_PKTINFO):
            size = InPktinfo._STRUCT.size
            if len(data) < size:
                raise CmsgError("cmsg buffer: truncated IP_PKTINFO message")
            yield IpPktinfoMessage(InPktinfo.unpack(data[:size]))
        else:
            yield UnknownMessage(level, kind, data)
        cursor = _next_header(control, cursor)


def _encode(data: Union[InPktinfo, bytes, bytearray, int]) -> bytes:
    if isinstance(data, InPktinfo):
        return data.pack()
    if isinstance(data, int):
        return _INT.pack(data)
    return bytes(data)


class BufferMut:
    """A zero-filled buffer of `size` bytes for outgoing control messages."""

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("buffer size must not be negative")
        self._data = bytearray(size)

    def __len__(self) -> int:
        return len(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def builder(self) -> "BufferBuilder":
        """A builder that fills this buffer one message at a time."""
        return BufferBuilder(self._data)


class BufferBuilder:
    """Appends control messages to a :class:`BufferMut`."""

    def __init__(self, data: bytearray) -> None:
        self._data = data
        self._cursor: Optional[int] = 0 if len(data) >= _HEADER.size else None

    def fill_next(
        self, cmsg_level: int, cmsg_type: int, data: Union[InPktinfo, bytes, bytearray, int]
    ) -> None:
        """Write the next message; raise CmsgError when the buffer is too small."""
        if self._cursor is None:
            raise CmsgError("cmsg buffer: insufficient space for next header")

        payload = _encode(data)
        offset = self._cursor
        _HEADER.pack_into(self._data, offset, _message_len(len(payload)), cmsg_level, cmsg_type)

        start = offset + HEADER_SIZE
        end = start + len(payload)
        if end > len(self._data):
            raise CmsgError("cmsg buffer: insufficient space for data")

        self._data[start:end] = payload
        self._cursor = _next_header(self._data, offset)