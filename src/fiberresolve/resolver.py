from __future__ import annotations

import logging
import socket
import typing

from .exceptions import ResolutionError, ReverseResolutionError
from .hook import Capability, RequestKind, ResolutionRequest
from .records import AddressRecord, NameRecord, as_socktype
from .scheduler import Scheduler, get_scheduler
from .util.fallback import SYSTEM_RESOLVER, SystemResolver
from .util.normalize import (
    _TYPE_PORT,
    default_host,
    expand_host_token,
    name_record,
    normalize_addresses,
    normalize_port,
    parse_literal,
    unique,
    with_canonname,
)

log = logging.getLogger(__name__)

_TYPE_NAMEINFO_ADDRESS = typing.Union[
    typing.Tuple[typing.Optional[str], int],
    typing.Tuple[typing.Optional[str], int, int, int],
    typing.Tuple[typing.Union[int, str], int, typing.Optional[str]],
]


class Resolver:
    """
    Forward and reverse lookups that cooperate with a :class:`Scheduler`.

    Inside a fiber of a scheduler whose hook can handle the lookup, the
    fiber is suspended while the hook works and other fibers run. Anywhere
    else, or when the hook declines by answering ``None``, the system
    resolver is called directly and blocks the thread.

    :param scheduler:
        Scheduler to cooperate with. By default the one installed for the
        calling thread with :func:`~fiberresolve.set_scheduler` is looked up
        on every call.
    :param system:
        Blocking resolver used as the fallback.
    """

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        system: SystemResolver | None = None,
    ) -> None:
        self._scheduler = scheduler
        self.system = system or SYSTEM_RESOLVER

    @property
    def scheduler(self) -> Scheduler | None:
        if self._scheduler is not None:
            return self._scheduler
        return get_scheduler()

    def _delegate(self, request: ResolutionRequest) -> typing.Any:
        scheduler = self.scheduler
        if scheduler is None or not scheduler.can_delegate(request.capability):
            return None
        answer = scheduler.delegate(request)
        if answer is None:
            log.debug("Hook declined %s lookup of %r", request.kind.value, request.target)
        return answer

    def getaddrinfo(
        self,
        host: str | bytes | None,
        port: _TYPE_PORT = None,
        family: int = 0,
        socktype: int = 0,
        protocol: int = 0,
        flags: int = 0,
        timeout: float | None = None,
    ) -> list[AddressRecord]:
        """Resolve *host* into a non-empty list of :class:`AddressRecord`.

        A missing *host* means loopback, or the wildcard address when
        ``AI_PASSIVE`` is in *flags*. ``"<any>"`` always means the wildcard
        address. IP literals are returned as is, without any lookup.

        :param timeout:
            Hint passed on to the hook; this method never times out itself.

        :raises ResolutionError: if no usable address was found.
        """
        port_number = normalize_port(port, socktype)

        if isinstance(host, bytes):
            try:
                host = host.decode("ascii")
            except UnicodeError as e:
                raise ResolutionError() from e
        if host is None:
            host = default_host(family, flags)
            if host is None:
                records = self.system.getaddrinfo(
                    None, port_number, family, socktype, protocol, flags
                )
                return self._checked(unique(records))
        host = expand_host_token(host, family)

        literal = parse_literal(host)
        if literal is not None:
            address, literal_family, scope_id = literal
            if family and family != literal_family:
                raise ResolutionError()
            record = AddressRecord(
                ip_address=address,
                port=port_number,
                family=literal_family,
                socktype=as_socktype(socktype),
                protocol=protocol,
                canonname=address if flags & socket.AI_CANONNAME else "",
                scope_id=scope_id,
            )
            return [record]

        request = ResolutionRequest(RequestKind.ADDRESS, host, timeout)
        answer = self._delegate(request)
        if answer is None:
            records = self.system.getaddrinfo(
                host, port_number, family, socktype, protocol, flags
            )
            return self._checked(unique(records))

        if isinstance(answer, (str, AddressRecord)):
            answer = [answer]
        records = normalize_addresses(answer, port_number, family, socktype, protocol)
        if flags & socket.AI_CANONNAME:
            records = with_canonname(records, host)
        return self._checked(records)

    def _checked(self, records: list[AddressRecord]) -> list[AddressRecord]:
        if not records:
            raise ResolutionError()
        return records

    def getnameinfo(
        self,
        sockaddr: _TYPE_NAMEINFO_ADDRESS,
        flags: int = 0,
        family: int | None = None,
        timeout: float | None = None,
    ) -> NameRecord:
        """Return ``(hostname, service)`` for *sockaddr*.

        *sockaddr* is ``(address, port)``, an IPv6 4-tuple, or
        ``(family, port, address)``. A ``None`` address means loopback.
        With ``NI_NUMERICHOST`` the address is returned without a lookup.
        When no name is found the address is returned, unless
        ``NI_NAMEREQD`` is set.

        The service name always comes from the local services table.

        :raises ReverseResolutionError: if ``NI_NAMEREQD`` is set and the
            address has no name.
        """
        address, port, flowinfo, scope_id, family = _split_sockaddr(sockaddr, family)

        if address is None:
            address = default_host(family or socket.AF_INET) or "127.0.0.1"
        literal = parse_literal(address)
        if literal is None:
            # A host name: numeric form first, as getnameinfo(3) needs one.
            record = self.getaddrinfo(address, port, family or 0, timeout=timeout)[0]
            ip, scope_id = record.ip_address, record.scope_id or scope_id
        else:
            ip, _, literal_scope = literal
            scope_id = scope_id or literal_scope

        if flags & socket.NI_NUMERICHOST:
            return name_record(ip, port, flags)

        request = ResolutionRequest(RequestKind.NAME, ip, timeout)
        answer = self._delegate(request)
        if answer is None:
            if ":" in ip:
                name = self.system.getnameinfo((ip, port, flowinfo, scope_id), flags)
            else:
                name = self.system.getnameinfo((ip, port), flags)
        elif isinstance(answer, str):
            name = answer or None
        else:
            log.debug("Ignoring malformed name answer %r for %r", answer, ip)
            name = None

        if name is None:
            if flags & socket.NI_NAMEREQD:
                raise ReverseResolutionError()
            name = ip
        return name_record(name, port, flags)

    def ip(self, host: str | None, timeout: float | None = None) -> AddressRecord:
        """First address of *host*, without port or socket type."""
        return self.getaddrinfo(host, 0, timeout=timeout)[0]

    def tcp(
        self, host: str | None, port: _TYPE_PORT, timeout: float | None = None
    ) -> AddressRecord:
        """First stream endpoint for *host* and *port*."""
        return self.getaddrinfo(
            host, port, socktype=socket.SOCK_STREAM, timeout=timeout
        )[0]

    def udp(
        self, host: str | None, port: _TYPE_PORT, timeout: float | None = None
    ) -> AddressRecord:
        """First datagram endpoint for *host* and *port*."""
        return self.getaddrinfo(
            host, port, socktype=socket.SOCK_DGRAM, timeout=timeout
        )[0]

    def gethostbyname(
        self, host: str, timeout: float | None = None
    ) -> tuple[typing.Any, ...]:
        """Return ``(canonical_name, family, *addresses)``.

        *family* is that of the first address; the addresses are every
        distinct literal found, in resolver order.
        """
        records = self.getaddrinfo(
            host,
            None,
            socktype=socket.SOCK_STREAM,
            flags=socket.AI_CANONNAME,
            timeout=timeout,
        )
        addresses = []
        for record in records:
            if record.ip_address not in addresses:
                addresses.append(record.ip_address)
        canonical = records[0].canonname or host
        return (canonical, records[0].family, *addresses)

    def gethostbyaddr(
        self, address: str, timeout: float | None = None
    ) -> tuple[str, list[str], list[str]]:
        """Return ``(hostname, aliases, addresses)`` like :func:`socket.gethostbyaddr`.

        :raises ReverseResolutionError: if the address has no name.
        """
        hostname, _ = self.getnameinfo(
            (address, 0), socket.NI_NAMEREQD, timeout=timeout
        )
        literal = parse_literal(address)
        addresses = [literal[0]] if literal is not None else []
        return hostname, [], addresses


def _split_sockaddr(
    sockaddr: _TYPE_NAMEINFO_ADDRESS, family: int | None
) -> tuple[str | None, int, int, int, int | None]:
    """Return ``(address, port, flowinfo, scope_id, family)`` from any accepted form."""
    flowinfo = scope_id = 0
    if len(sockaddr) == 3:
        raw_family, port, address = sockaddr  # type: ignore[misc]
        family = _family(raw_family)
    elif len(sockaddr) == 4:
        address, port, flowinfo, scope_id = sockaddr  # type: ignore[misc]
    elif len(sockaddr) == 2:
        address, port = sockaddr  # type: ignore[misc]
    else:
        raise TypeError(f"not expecting a sockaddr of length {len(sockaddr)}")
    if address is not None and not isinstance(address, str):
        raise TypeError(f"not expecting address type {type(address).__name__}")
    return address, normalize_port(port), flowinfo, scope_id, family


def _family(value: int | str) -> int:
    if isinstance(value, str):
        name = value.upper()
        if not name.startswith("AF_"):
            name = "AF_" + name
        try:
            return socket.AddressFamily[name]
        except KeyError:
            raise ResolutionError() from None
    return value
