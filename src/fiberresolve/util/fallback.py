from __future__ import annotations

import logging
import socket

from ..exceptions import ResolutionError
from ..records import AddressRecord

log = logging.getLogger(__name__)


class SystemResolver:
    """
    A resolver that directly uses the system's resolver functions.

    Every call blocks the calling thread, and with it every fiber on that
    thread. Forward lookup failures are converted into
    :class:`~fiberresolve.exceptions.ResolutionError`.
    """

    def getaddrinfo(
        self,
        host: str | None,
        port: int,
        family: int = 0,
        type: int = 0,
        proto: int = 0,
        flags: int = 0,
    ) -> list[AddressRecord]:
        log.debug("Blocking getaddrinfo for %r (family=%s)", host, family)
        try:
            entries = socket.getaddrinfo(host, port, family, type, proto, flags)
        except (OSError, UnicodeError) as e:
            raise ResolutionError() from e
        return [AddressRecord.from_getaddrinfo(entry) for entry in entries]

    def getnameinfo(
        self, sockaddr: tuple[str, int] | tuple[str, int, int, int], flags: int = 0
    ) -> str | None:
        """Return the host name for *sockaddr*, or ``None`` if it has none."""
        log.debug("Blocking getnameinfo for %r", sockaddr[0])
        # Ask for a name explicitly so "no name" can't be mistaken for the
        # numeric form getnameinfo substitutes otherwise.
        flags = (flags | socket.NI_NAMEREQD | socket.NI_NUMERICSERV) & ~socket.NI_NUMERICHOST
        try:
            host, _ = socket.getnameinfo(sockaddr, flags)
        except OSError:
            return None
        return host or None

    def getservbyport(self, port: int, protocol: str = "tcp") -> str:
        """Look *port* up in the local services table, never over the network."""
        try:
            return socket.getservbyport(port, protocol)
        except (OSError, OverflowError):
            return str(port)

    def getservbyname(self, service: str, protocol: str | None = None) -> int:
        try:
            if protocol is None:
                return socket.getservbyname(service)
            return socket.getservbyname(service, protocol)
        except OSError as e:
            raise ResolutionError() from e


#: Shared instance, the resolver keeps no state.
SYSTEM_RESOLVER = SystemResolver()
