from __future__ import annotations

import enum
import functools
import typing
from concurrent.futures import Future
from dataclasses import dataclass

if typing.TYPE_CHECKING:
    from .records import AddressRecord
    from .scheduler import ResumeToken, Scheduler

#: One raw answer from a hook: an IP literal, a ``(family, ip)`` pair, a
#: sockaddr tuple, a :func:`socket.getaddrinfo` entry or a record.
_TYPE_RAW_ADDRESS = typing.Union[str, typing.Tuple[typing.Any, ...], "AddressRecord"]

#: ``None`` means the hook declined and the caller falls back to the system
#: resolver. An empty list means it resolved to nothing.
_TYPE_ADDRESS_RESULT = typing.Optional[
    typing.Union[
        typing.Sequence[_TYPE_RAW_ADDRESS],
        "Future[typing.Optional[typing.Sequence[_TYPE_RAW_ADDRESS]]]",
    ]
]
_TYPE_NAME_RESULT = typing.Optional[
    typing.Union[str, "Future[typing.Optional[str]]"]
]


_SelfT = typing.TypeVar("_SelfT", bound="ResolverHook")


class Capability(enum.Flag):
    """Operations a hook is able to take over from the system resolver."""

    NONE = 0
    RESOLVE_ADDRESS = enum.auto()
    RESOLVE_NAME = enum.auto()


class RequestKind(enum.Enum):
    ADDRESS = "address"
    NAME = "name"


@dataclass(frozen=True)
class ResolutionRequest:
    """A single lookup handed to a hook.

    ``target`` is a hostname for :attr:`RequestKind.ADDRESS` requests and an
    IP literal for :attr:`RequestKind.NAME` requests. ``timeout`` is a hint
    in seconds; enforcing it is up to the hook.
    """

    kind: RequestKind
    target: str
    timeout: float | None = None

    @property
    def capability(self) -> Capability:
        if self.kind is RequestKind.ADDRESS:
            return Capability.RESOLVE_ADDRESS
        return Capability.RESOLVE_NAME


class ResolverHook:
    """Base class for scheduler hooks.

    Subclasses override :meth:`resolve_address`, :meth:`resolve_name` or
    both. The overridden methods determine :attr:`capabilities`, which the
    :class:`~fiberresolve.scheduler.Scheduler` reads once when the hook is
    installed; the methods of a hook without the matching capability are
    never called.

    Either method may:

    * return an answer directly,
    * return ``None`` to decline, in which case the blocking system
      resolver is used instead,
    * return a :class:`concurrent.futures.Future` that is completed later,
      from a worker thread or an event loop of the hook's own, with one of
      the two above.

    Exceptions raised by a hook are passed to the calling fiber untouched.

    Hooks that would rather complete requests themselves, from a thread or
    loop of their own, override :meth:`submit` and finish the token with
    :meth:`Scheduler.resume` or :meth:`Scheduler.throw`. Such hooks set
    :attr:`capabilities` explicitly.
    """

    capabilities: typing.ClassVar[Capability] = Capability.NONE

    def __init_subclass__(cls, **kwargs: typing.Any) -> None:
        super().__init_subclass__(**kwargs)
        if "capabilities" in cls.__dict__:
            return
        found = Capability.NONE
        if cls.resolve_address is not ResolverHook.resolve_address:
            found |= Capability.RESOLVE_ADDRESS
        if cls.resolve_name is not ResolverHook.resolve_name:
            found |= Capability.RESOLVE_NAME
        cls.capabilities = found

    def resolve_address(
        self, hostname: str, timeout: float | None = None
    ) -> _TYPE_ADDRESS_RESULT:
        raise NotImplementedError("hook does not resolve addresses")

    def resolve_name(self, ip_address: str) -> _TYPE_NAME_RESULT:
        raise NotImplementedError("hook does not resolve names")

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def handle(
        self, request: ResolutionRequest
    ) -> _TYPE_ADDRESS_RESULT | _TYPE_NAME_RESULT:
        """Dispatch *request* to the matching hook method."""
        if request.kind is RequestKind.ADDRESS:
            return self.resolve_address(request.target, request.timeout)
        return self.resolve_name(request.target)

    def submit(self, token: ResumeToken, scheduler: Scheduler) -> None:
        """Start work on ``token.request`` and see that *token* completes.

        Called by the scheduler right after the requesting fiber suspends,
        before any other fiber runs. The default calls :meth:`handle` and
        completes *token* from its answer, at once or when the returned
        future finishes.
        """
        try:
            answer = self.handle(token.request)
        except Exception as e:
            scheduler.throw(token, e)
            return
        if isinstance(answer, Future):
            answer.add_done_callback(functools.partial(_complete, scheduler, token))
        else:
            scheduler.resume(token, answer)

    def close(self) -> None:
        """Release resources held by the hook. A no-op by default."""
        pass

    def __enter__(self: _SelfT) -> _SelfT:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _complete(
    scheduler: Scheduler, token: ResumeToken, source: Future[typing.Any]
) -> None:
    try:
        answer = source.result()
    except Exception as e:
        scheduler.throw(token, e)
    else:
        scheduler.resume(token, answer)


def capabilities_of(hook: ResolverHook | None) -> Capability:
    if hook is None:
        return Capability.NONE
    return hook.capabilities
