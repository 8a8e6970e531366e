from __future__ import annotations

import ipaddress
import logging
import socket
import typing

from ..exceptions import ResolutionError
from ..records import AddressRecord, NameRecord, as_socktype
from .fallback import SYSTEM_RESOLVER

if typing.TYPE_CHECKING:
    from ..hook import _TYPE_RAW_ADDRESS

log = logging.getLogger(__name__)

#: Host token asking for the wildcard ("any") address.
ANY_HOST_TOKEN = "<any>"
#: Host token asking for the IPv4 limited broadcast address.
BROADCAST_HOST_TOKEN = "<broadcast>"

_LOOPBACK = {socket.AF_INET: "127.0.0.1", socket.AF_INET6: "::1"}
_WILDCARD = {socket.AF_INET: "0.0.0.0", socket.AF_INET6: "::"}

_TYPE_PORT = typing.Union[int, str, bytes, None]


def default_host(family: int, flags: int = 0) -> str | None:
    """Literal standing in for a missing host.

    ``AI_PASSIVE`` selects the wildcard address, otherwise loopback. Returns
    ``None`` for families without a fixed answer, which are left to the
    system resolver.
    """
    table = _WILDCARD if flags & socket.AI_PASSIVE else _LOOPBACK
    return table.get(family)  # type: ignore[call-overload]


def expand_host_token(host: str, family: int) -> str:
    """Replace the ``<any>`` and ``<broadcast>`` tokens by literals."""
    if host == ANY_HOST_TOKEN:
        return _WILDCARD.get(family, "0.0.0.0")  # type: ignore[call-overload]
    if host == BROADCAST_HOST_TOKEN:
        if family not in (socket.AF_UNSPEC, socket.AF_INET):
            raise ResolutionError()
        return "255.255.255.255"
    return host


def _scope_id(scope: str | None) -> int:
    if not scope:
        return 0
    if scope.isdigit():
        return int(scope)
    try:
        return socket.if_nametoindex(scope)
    except (OSError, ValueError):
        return 0


def parse_literal(host: str) -> tuple[str, socket.AddressFamily, int] | None:
    """Return ``(address, family, scope_id)`` if *host* is an IP literal.

    Bracketed IPv6 (``[::1]``) and scoped (``fe80::1%eth0``) forms are
    accepted. The address comes back in its canonical text form.
    """
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        parsed = ipaddress.ip_address(host)
    except ValueError:
        return None
    if isinstance(parsed, ipaddress.IPv6Address):
        scope = parsed.scope_id
        address = str(parsed).split("%", 1)[0]
        return address, socket.AF_INET6, _scope_id(scope)
    return str(parsed), socket.AF_INET, 0


def normalize_port(port: _TYPE_PORT, socktype: int = 0) -> int:
    """Turn *port* (number, digit string or service name) into an integer.

    Service names come from the local services table.
    """
    if port is None:
        return 0
    if isinstance(port, bytes):
        try:
            port = port.decode("ascii")
        except UnicodeError as e:
            raise ResolutionError() from e
    if isinstance(port, str):
        if port.isdigit():
            port = int(port)
        else:
            protocol = None
            if socktype == socket.SOCK_STREAM:
                protocol = "tcp"
            elif socktype == socket.SOCK_DGRAM:
                protocol = "udp"
            return SYSTEM_RESOLVER.getservbyname(port, protocol)
    if not 0 <= port <= 65535:
        raise ResolutionError()
    return port


def _to_record(raw: _TYPE_RAW_ADDRESS) -> AddressRecord | None:
    if isinstance(raw, AddressRecord):
        return raw

    declared = None
    scope_id = 0
    socktype = 0
    protocol = 0
    if isinstance(raw, str):
        ip = raw
    elif isinstance(raw, tuple) and len(raw) == 5:
        declared, socktype, protocol, _, sockaddr = raw
        if not isinstance(sockaddr, tuple) or len(sockaddr) not in (2, 4):
            return None
        if not isinstance(socktype, int) or not isinstance(protocol, int):
            return None
        ip = sockaddr[0]
        if len(sockaddr) == 4:
            scope_id = sockaddr[3]
    elif isinstance(raw, tuple) and len(raw) == 2 and isinstance(raw[1], str):
        declared, ip = raw
    elif isinstance(raw, tuple) and len(raw) in (2, 4):
        ip = raw[0]
        if len(raw) == 4:
            scope_id = raw[3]
    else:
        return None

    if not isinstance(ip, str) or not isinstance(scope_id, int):
        return None
    literal = parse_literal(ip)
    if literal is None:
        return None
    address, family, literal_scope = literal
    if declared is not None and declared != family:
        return None
    return AddressRecord(
        ip_address=address,
        port=0,
        family=family,
        socktype=as_socktype(socktype),
        protocol=protocol,
        scope_id=scope_id or literal_scope,
    )


def normalize_addresses(
    raw: typing.Iterable[_TYPE_RAW_ADDRESS],
    port: int,
    family: int = 0,
    socktype: int = 0,
    protocol: int = 0,
) -> list[AddressRecord]:
    """Convert raw hook answers into records.

    Malformed entries are dropped, the requested port and socket type are
    merged in, entries of another family are filtered out when *family* is
    set, and duplicates are removed keeping the first occurrence. The result
    may be empty; callers decide whether that is an error.
    """
    records = []
    dropped = 0
    for entry in raw:
        record = _to_record(entry)
        if record is None:
            dropped += 1
            continue
        if family and record.family != family:
            continue
        changes: dict[str, typing.Any] = {"port": port}
        if socktype:
            changes["socktype"] = as_socktype(socktype)
        if protocol:
            changes["protocol"] = protocol
        records.append(record.replace(**changes))
    if dropped:
        log.debug("Dropped %d malformed address entries", dropped)
    return unique(records)


def unique(records: typing.Iterable[AddressRecord]) -> list[AddressRecord]:
    seen = set()
    result = []
    for record in records:
        if record in seen:
            continue
        seen.add(record)
        result.append(record)
    return result


def with_canonname(records: list[AddressRecord], canonname: str) -> list[AddressRecord]:
    """Set *canonname* on the first record, as ``AI_CANONNAME`` does."""
    if not records:
        return records
    return [records[0].replace(canonname=canonname)] + records[1:]


def name_record(hostname: str, port: int, flags: int = 0) -> NameRecord:
    """Pair *hostname* with the service name for *port*."""
    if flags & socket.NI_NUMERICSERV:
        service = str(port)
    else:
        protocol = "udp" if flags & socket.NI_DGRAM else "tcp"
        service = SYSTEM_RESOLVER.getservbyport(port, protocol)
    return NameRecord(hostname, service)
