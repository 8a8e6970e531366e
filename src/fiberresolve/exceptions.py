from __future__ import annotations

import typing

if typing.TYPE_CHECKING:
    from .scheduler import Fiber

# Messages are matched verbatim by callers, keep them stable.
GETADDRINFO_FAILURE = "getaddrinfo: nodename nor servname provided, or not known"
GETNAMEINFO_FAILURE = "getnameinfo: nodename nor servname provided, or not known"

_TYPE_REDUCE_RESULT = typing.Tuple[
    typing.Callable[..., object], typing.Tuple[object, ...]
]

# Base Exceptions


class FiberResolveError(Exception):
    """Base exception used by this module."""

    pass


class FiberResolveWarning(Warning):
    """Base warning used by this module."""

    pass


class ResolverError(FiberResolveError, OSError):
    """Base exception for failed address or name resolution.

    Derives from :class:`OSError` so code written against
    :func:`socket.getaddrinfo` (which raises :class:`socket.gaierror`)
    keeps catching it.
    """

    #: Fixed message used when no explicit message is given.
    default_message = "resolution failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (str(self),)


class SchedulerError(FiberResolveError, RuntimeError):
    """Raised when the cooperative scheduler is used incorrectly."""

    pass


# Leaf Exceptions


class ResolutionError(ResolverError):
    """Raised when a forward lookup produced no usable address."""

    default_message = GETADDRINFO_FAILURE


class ReverseResolutionError(ResolverError):
    """Raised when a reverse lookup required a name and none was found."""

    default_message = GETNAMEINFO_FAILURE


class FiberError(SchedulerError):
    """Raised when asking an unfinished fiber for its outcome.

    :param fiber: The fiber that was queried
    """

    def __init__(self, fiber: Fiber | None, message: str) -> None:
        self.fiber = fiber
        super().__init__(f"{fiber!r}: {message}")

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (None, str(self))


class SchedulerReplacedWarning(FiberResolveWarning):
    """Warned when a scheduler holding unfinished fibers is replaced."""

    pass
