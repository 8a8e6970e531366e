from __future__ import annotations

import socket
import typing
import dataclasses

_TYPE_SOCKADDR = typing.Union[typing.Tuple[str, int], typing.Tuple[str, int, int, int]]

_TYPE_GAI_RESULT = typing.Tuple[
    socket.AddressFamily,
    socket.SocketKind,
    int,
    str,
    _TYPE_SOCKADDR,
]


@dataclasses.dataclass(frozen=True)
class AddressRecord:
    """A single resolved endpoint.

    Records compare by value: two lookups of the same literal give equal,
    but distinct, records.
    """

    ip_address: str
    port: int
    family: socket.AddressFamily
    socktype: socket.SocketKind | int
    protocol: int = 0
    canonname: str = ""
    scope_id: int = 0

    @property
    def ip_port(self) -> int:
        return self.port

    def is_ipv4(self) -> bool:
        return self.family == socket.AF_INET

    def is_ipv6(self) -> bool:
        return self.family == socket.AF_INET6

    @property
    def sockaddr(self) -> _TYPE_SOCKADDR:
        """Address tuple suitable for :meth:`socket.socket.connect`."""
        if self.is_ipv6():
            return (self.ip_address, self.port, 0, self.scope_id)
        return (self.ip_address, self.port)

    def to_getaddrinfo(self) -> _TYPE_GAI_RESULT:
        """Return the record in the shape :func:`socket.getaddrinfo` uses."""
        return (self.family, self.socktype, self.protocol, self.canonname, self.sockaddr)

    def replace(self, **changes: typing.Any) -> AddressRecord:
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_getaddrinfo(cls, entry: _TYPE_GAI_RESULT) -> AddressRecord:
        family, socktype, protocol, canonname, sockaddr = entry
        scope_id = sockaddr[3] if len(sockaddr) == 4 else 0  # type: ignore[misc]
        return cls(
            ip_address=_strip_scope(sockaddr[0]),
            port=sockaddr[1],
            family=socket.AddressFamily(family),
            socktype=as_socktype(socktype),
            protocol=protocol,
            canonname=canonname,
            scope_id=scope_id,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.ip_address!r}, {self.port}, "
            f"{self.family.name}, {getattr(self.socktype, 'name', self.socktype)})"
        )


class NameRecord(typing.NamedTuple):
    """Result of a reverse lookup: ``(hostname, service)``."""

    hostname: str
    service: str


def _strip_scope(address: str) -> str:
    # getaddrinfo appends "%iface" to link-local IPv6 literals.
    return address.split("%", 1)[0]


def as_socktype(value: int) -> socket.SocketKind | int:
    """Map *value* onto :class:`socket.SocketKind`, keeping ``0`` (any) as is."""
    try:
        return socket.SocketKind(value)
    except ValueError:
        return value
