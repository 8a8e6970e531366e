from __future__ import annotations

import collections
import enum
import itertools
import logging
import queue
import threading
import typing
import warnings
from concurrent.futures import Future, InvalidStateError
from types import TracebackType

import greenlet

from .exceptions import FiberError, SchedulerError, SchedulerReplacedWarning
from .hook import Capability, ResolutionRequest, ResolverHook, capabilities_of

log = logging.getLogger(__name__)

_T = typing.TypeVar("_T")


class FiberState(enum.Enum):
    READY = "ready"
    RUNNING = "running"
    SUSPENDED = "suspended"
    FINISHED = "finished"


class Fiber:
    """A cooperatively scheduled unit of work, and the handle to it.

    Created by :meth:`Scheduler.schedule`. The outcome of the body is
    available through :meth:`result` and :meth:`exception` once the fiber
    is :attr:`FiberState.FINISHED`.
    """

    _counter = itertools.count(1)

    def __init__(
        self,
        body: typing.Callable[..., typing.Any],
        args: tuple[typing.Any, ...] = (),
        kwargs: dict[str, typing.Any] | None = None,
        name: str | None = None,
    ) -> None:
        self.id = next(self._counter)
        self.name = name or f"fiber-{self.id}"
        self.state = FiberState.READY
        self._body: typing.Callable[..., typing.Any] | None = body
        self._args = args
        self._kwargs = kwargs or {}
        self._greenlet: greenlet.greenlet | None = None
        self._token: ResumeToken | None = None
        self._outcome: Future[typing.Any] = Future()

    def __repr__(self) -> str:
        return f"<Fiber {self.name} {self.state.value}>"

    def done(self) -> bool:
        return self.state is FiberState.FINISHED

    def result(self) -> typing.Any:
        """Return the body's return value, re-raising its exception if any."""
        if not self.done():
            raise FiberError(self, "fiber has not finished")
        return self._outcome.result()

    def exception(self) -> BaseException | None:
        if not self.done():
            raise FiberError(self, "fiber has not finished")
        return self._outcome.exception()

    def add_done_callback(self, fn: typing.Callable[[Fiber], object]) -> None:
        """Call *fn* with this fiber once it finishes (immediately if it has)."""
        self._outcome.add_done_callback(lambda _: fn(self))

    def _run(self) -> None:
        assert self._body is not None
        try:
            value = self._body(*self._args, **self._kwargs)
        except Exception as e:
            log.debug("Fiber %s raised %r", self.name, e)
            self._finish()
            self._outcome.set_exception(e)
        else:
            self._finish()
            self._outcome.set_result(value)

    def _finish(self) -> None:
        self.state = FiberState.FINISHED
        # Drop references held by the body, the fiber handle may outlive it.
        self._body = None
        self._args = ()
        self._kwargs = {}


class ResumeToken:
    """Identifies the one delegated request a suspended fiber waits on.

    The token's future receives the hook's answer. It can be completed
    exactly once.
    """

    def __init__(self, fiber: Fiber, request: ResolutionRequest) -> None:
        self.fiber = fiber
        self.request = request
        self.future: Future[typing.Any] = Future()

    def __repr__(self) -> str:
        request = self.request
        return f"<ResumeToken {self.fiber.name} {request.kind.value}:{request.target!r}>"


class Scheduler:
    """Runs fibers cooperatively on a single carrier thread.

    :param hook:
        The :class:`~fiberresolve.hook.ResolverHook` consulted before
        blocking lookups, or ``None`` to always resolve directly. Its
        capabilities are read once, here.

    Usage::

        with Scheduler(MyHook()) as scheduler:
            scheduler.schedule(lookup, "example.com")
        # every fiber has finished here

    Fibers run in the order they are scheduled until one finishes or
    suspends on a delegated lookup; a suspended fiber is only resumed after
    the hook has answered, so completion order need not follow schedule
    order.
    """

    def __init__(self, hook: ResolverHook | None = None) -> None:
        self.hook = hook
        self.capabilities = capabilities_of(hook)

        self._ready: collections.deque[Fiber] = collections.deque()
        self._deferred: collections.deque[ResumeToken] = collections.deque()
        self._waiting: set[ResumeToken] = set()
        # Completed tokens, fed from whichever thread finishes a hook future.
        self._completions: queue.SimpleQueue[ResumeToken] = queue.SimpleQueue()
        self._unfinished: set[Fiber] = set()

        self._current: Fiber | None = None
        self._loop: greenlet.greenlet | None = None
        self._thread_id: int | None = None
        self._running = False
        self._previous: Scheduler | None = None

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} hook={self.hook!r} ready={len(self._ready)} "
            f"pending={len(self._waiting)}>"
        )

    def __enter__(self) -> Scheduler:
        self._previous = set_scheduler(self)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is None:
                self.run()
        finally:
            if get_scheduler() is self:
                _state.scheduler = self._previous
            self._previous = None

    @property
    def current_fiber(self) -> Fiber | None:
        """The fiber running right now, ``None`` outside of fibers."""
        fiber = self._current
        if fiber is None or greenlet.getcurrent() is not fiber._greenlet:
            return None
        return fiber

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        """Number of fibers suspended on a delegated lookup."""
        return len(self._waiting)

    @property
    def unfinished(self) -> int:
        return len(self._unfinished)

    def _check_thread(self) -> None:
        ident = threading.get_ident()
        if self._thread_id is None:
            self._thread_id = ident
        elif self._thread_id != ident:
            raise SchedulerError("scheduler is bound to another carrier thread")

    def schedule(
        self,
        body: typing.Callable[..., _T],
        *args: typing.Any,
        name: str | None = None,
        **kwargs: typing.Any,
    ) -> Fiber:
        """Queue ``body(*args, **kwargs)`` as a new fiber and return at once.

        The fiber starts the next time the loop picks it, in :meth:`run`.
        """
        self._check_thread()
        fiber = Fiber(body, args, kwargs, name=name)
        self._unfinished.add(fiber)
        fiber.add_done_callback(self._unfinished.discard)
        self._ready.append(fiber)
        log.debug("Scheduled %s", fiber.name)
        return fiber

    def run(self) -> None:
        """Run fibers until none is ready, waiting or delegated."""
        if self._running:
            raise SchedulerError("scheduler is already running")
        self._check_thread()
        self._running = True
        self._loop = greenlet.getcurrent()
        try:
            while True:
                self._collect(block=False)
                if self._ready:
                    self._step(self._ready.popleft())
                elif self._waiting:
                    self._collect(block=True)
                else:
                    break
        finally:
            self._running = False
            self._loop = None

    def close(self) -> None:
        """Drain the scheduler. Fibers may still be scheduled afterwards."""
        self.run()

    def _step(self, fiber: Fiber) -> None:
        if fiber._greenlet is None:
            fiber._greenlet = greenlet.greenlet(fiber._run, parent=self._loop)
        else:
            fiber._greenlet.parent = self._loop
        fiber.state = FiberState.RUNNING
        self._current = fiber
        try:
            fiber._greenlet.switch()
        finally:
            self._current = None
        # Hand the lookup over while the remaining ready fibers run.
        while self._deferred:
            self._dispatch(self._deferred.popleft())

    def _collect(self, block: bool) -> None:
        try:
            token = self._completions.get(block=block)
        except queue.Empty:
            return
        while True:
            self._waiting.discard(token)
            token.fiber.state = FiberState.READY
            self._ready.append(token.fiber)
            try:
                token = self._completions.get_nowait()
            except queue.Empty:
                return

    def can_delegate(self, capability: Capability) -> bool:
        """Whether a lookup needing *capability* would go to the hook now.

        Only true inside one of this scheduler's fibers and when the hook
        has the capability.
        """
        return capability in self.capabilities and self.current_fiber is not None

    def delegate(self, request: ResolutionRequest) -> typing.Any:
        """Suspend the current fiber until the hook has handled *request*.

        Returns the hook's raw answer, ``None`` if it declined. Exceptions
        raised by the hook are raised here.
        """
        fiber = self.current_fiber
        if fiber is None or self._loop is None:
            raise SchedulerError("delegate() must be called from inside a fiber")
        if request.capability not in self.capabilities:
            raise SchedulerError(f"hook cannot handle {request.kind.value} requests")
        if fiber._token is not None:
            raise SchedulerError(f"{fiber!r} already waits on {fiber._token!r}")

        token = ResumeToken(fiber, request)
        token.future.add_done_callback(lambda _: self._completions.put(token))
        fiber._token = token
        fiber.state = FiberState.SUSPENDED
        self._waiting.add(token)
        self._deferred.append(token)
        log.debug("%s suspended on %r", fiber.name, token)
        try:
            self._loop.switch()
        finally:
            fiber._token = None
        return token.future.result()

    def _dispatch(self, token: ResumeToken) -> None:
        assert self.hook is not None
        try:
            self.hook.submit(token, self)
        except Exception as e:
            self.throw(token, e)

    def resume(self, token: ResumeToken, result: typing.Any = None) -> None:
        """Complete *token* with *result*; its fiber becomes ready again.

        Safe to call from any thread.
        """
        try:
            token.future.set_result(result)
        except InvalidStateError:
            raise SchedulerError(f"{token!r} was already resumed") from None

    def throw(self, token: ResumeToken, exc: BaseException) -> None:
        """Complete *token* so that its fiber raises *exc* when resumed."""
        try:
            token.future.set_exception(exc)
        except InvalidStateError:
            raise SchedulerError(f"{token!r} was already resumed") from None


class _SchedulerState(threading.local):
    scheduler: Scheduler | None = None


_state = _SchedulerState()


def get_scheduler() -> Scheduler | None:
    """Return the scheduler installed for the current thread, if any."""
    return _state.scheduler


def set_scheduler(scheduler: Scheduler | None) -> Scheduler | None:
    """Install *scheduler* for the current thread and return the previous one.

    Replacing a scheduler while it runs is not supported.
    """
    previous = _state.scheduler
    if previous is not None and previous is not scheduler:
        if previous.is_running:
            raise SchedulerError("cannot replace a running scheduler")
        if previous.unfinished:
            warnings.warn(
                f"Replacing {previous!r} which still has "
                f"{previous.unfinished} unfinished fiber(s)",
                SchedulerReplacedWarning,
                stacklevel=2,
            )
    _state.scheduler = scheduler
    return previous


def schedule(
    body: typing.Callable[..., _T],
    *args: typing.Any,
    name: str | None = None,
    **kwargs: typing.Any,
) -> Fiber:
    """Schedule *body* on the current thread's scheduler."""
    scheduler = get_scheduler()
    if scheduler is None:
        raise SchedulerError("no scheduler installed for this thread")
    return scheduler.schedule(body, *args, name=name, **kwargs)
