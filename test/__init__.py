from __future__ import annotations

import functools
import socket
import typing
import warnings

import pytest

from fiberresolve import ResolverHook, Scheduler
from fiberresolve.exceptions import FiberResolveWarning

_T = typing.TypeVar("_T")

V4_LITERAL = "1.2.3.4"
V6_LITERAL = "1234:1234:123:1:123:1234:1234:1234"
UNRESOLVED_ADDRESS = "4.3.2.1"
NON_EXISTING_DOMAIN = "non-existing-domain.abc"


class NullHook(ResolverHook):
    """Can resolve both ways, but always declines."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, typing.Any]] = []

    def resolve_address(self, hostname: str, timeout: float | None = None) -> None:
        self.calls.append(("address", hostname))
        return None

    def resolve_name(self, ip_address: str) -> None:
        self.calls.append(("name", ip_address))
        return None


class StubHook(ResolverHook):
    """Answers every forward lookup with one IPv4 and one IPv6 literal."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, typing.Any]] = []

    def resolve_address(
        self, hostname: str, timeout: float | None = None
    ) -> list[str]:
        self.calls.append(("address", (hostname, timeout)))
        return [V4_LITERAL, V6_LITERAL]

    def resolve_name(self, ip_address: str) -> str:
        self.calls.append(("name", ip_address))
        return "example.com"


def in_fiber(
    hook: ResolverHook | None, body: typing.Callable[..., _T], *args: typing.Any
) -> _T:
    """Run *body* in a fiber of a fresh scheduler and return its result."""
    with Scheduler(hook) as scheduler:
        fiber = scheduler.schedule(body, *args)
    return typing.cast(_T, fiber.result())


def _can_resolve(host: str, family: int = socket.AF_UNSPEC) -> bool:
    """Returns True if the system can resolve host to an address."""
    try:
        socket.getaddrinfo(host, None, family)
        return True
    except socket.gaierror:
        return False


def _reverse_resolves_localhost() -> bool:
    try:
        host, _ = socket.getnameinfo(("127.0.0.1", 80), socket.NI_NAMEREQD)
    except OSError:
        return False
    return host == "localhost"


def _has_services_table() -> bool:
    try:
        return socket.getservbyname("http", "tcp") == 80
    except OSError:
        return False


# Containers sometimes ship without a usable /etc/hosts or /etc/services.
RESOLVES_LOCALHOST = _can_resolve("localhost", socket.AF_INET)
REVERSE_RESOLVES_LOCALHOST = _reverse_resolves_localhost()
HAS_SERVICES_TABLE = _has_services_table()

requiresServices = pytest.mark.skipif(
    not HAS_SERVICES_TABLE, reason="No services table on this host."
)


def clear_warnings(cls: type[Warning] = FiberResolveWarning) -> None:
    new_filters = []
    for f in warnings.filters:
        if issubclass(f[2], cls):
            continue
        new_filters.append(f)
    warnings.filters[:] = new_filters


def resolvesLocalhost(test: typing.Callable[..., _T]) -> typing.Callable[..., _T]:
    """Test requires 'localhost' to resolve to an IPv4 address"""

    @functools.wraps(test)
    def wrapper(*args: typing.Any, **kwargs: typing.Any) -> _T:
        if not RESOLVES_LOCALHOST:
            pytest.skip("Can't resolve localhost.")
        return test(*args, **kwargs)

    return wrapper


def reverseResolvesLocalhost(
    test: typing.Callable[..., _T],
) -> typing.Callable[..., _T]:
    """Test requires 127.0.0.1 to reverse resolve to 'localhost'"""

    @functools.wraps(test)
    def wrapper(*args: typing.Any, **kwargs: typing.Any) -> _T:
        if not REVERSE_RESOLVES_LOCALHOST:
            pytest.skip("127.0.0.1 doesn't reverse resolve to localhost.")
        return test(*args, **kwargs)

    return wrapper
