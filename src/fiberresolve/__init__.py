"""
Cooperative fibers whose address and name lookups are handed to a pluggable scheduler hook
"""

# Set default logging handler to avoid "No handler found" warnings.
import logging
import warnings
from logging import NullHandler
from typing import TextIO, Type

from . import exceptions
from ._version import __version__
from .hook import Capability, RequestKind, ResolutionRequest, ResolverHook
from .records import AddressRecord, NameRecord
from .resolver import Resolver
from .scheduler import (
    Fiber,
    FiberState,
    ResumeToken,
    Scheduler,
    get_scheduler,
    schedule,
    set_scheduler,
)

__license__ = "MIT"
__version__ = __version__

__all__ = (
    "AddressRecord",
    "Capability",
    "Fiber",
    "FiberState",
    "NameRecord",
    "RequestKind",
    "ResolutionRequest",
    "Resolver",
    "ResolverHook",
    "ResumeToken",
    "Scheduler",
    "add_stderr_logger",
    "disable_warnings",
    "get_scheduler",
    "getaddrinfo",
    "gethostbyaddr",
    "gethostbyname",
    "getnameinfo",
    "ip",
    "schedule",
    "set_scheduler",
    "tcp",
    "udp",
)

logging.getLogger(__name__).addHandler(NullHandler())


def add_stderr_logger(level: int = logging.DEBUG) -> "logging.StreamHandler[TextIO]":
    """
    Helper for quickly adding a StreamHandler to the logger. Useful for
    debugging.

    Returns the handler after adding it.
    """
    # This method needs to be in this __init__.py to get the __name__ correct
    # even if fiberresolve is vendored within another package.
    logger = logging.getLogger(__name__)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.debug("Added a stderr logging handler to logger: %s", __name__)
    return handler


# ... Clean up.
del NullHandler


# Replacing a scheduler with live fibers is usually a bug, warn every time.
warnings.simplefilter("always", exceptions.SchedulerReplacedWarning, append=True)


def disable_warnings(category: Type[Warning] = exceptions.FiberResolveWarning) -> None:
    """
    Helper for quickly disabling all fiberresolve warnings.
    """
    warnings.simplefilter("ignore", category)


# Looks up the calling thread's scheduler on every call, so one instance
# serves every thread.
_DEFAULT_RESOLVER = Resolver()

getaddrinfo = _DEFAULT_RESOLVER.getaddrinfo
getnameinfo = _DEFAULT_RESOLVER.getnameinfo
ip = _DEFAULT_RESOLVER.ip
tcp = _DEFAULT_RESOLVER.tcp
udp = _DEFAULT_RESOLVER.udp
gethostbyname = _DEFAULT_RESOLVER.gethostbyname
gethostbyaddr = _DEFAULT_RESOLVER.gethostbyaddr
