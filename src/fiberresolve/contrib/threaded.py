"""
Hook that moves lookups onto a small thread pool.

The system resolver cannot be made non-blocking, so each lookup runs in a
worker thread while the carrier thread keeps running other fibers. The
answer travels back through a :class:`concurrent.futures.Future`.

Usage::

    from fiberresolve import Scheduler, getaddrinfo
    from fiberresolve.contrib.threaded import ThreadedResolverHook

    with ThreadedResolverHook() as hook, Scheduler(hook) as scheduler:
        scheduler.schedule(getaddrinfo, "example.com", 443)
"""

from __future__ import annotations

import logging
import socket
import threading
import typing
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor

from ..exceptions import ResolutionError
from ..hook import ResolverHook

log = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


def _settle(
    future: Future[typing.Any],
    value: typing.Any = None,
    exc: BaseException | None = None,
) -> None:
    # First answer wins: the lookup and its timeout race for the future.
    try:
        if exc is not None:
            future.set_exception(exc)
        else:
            future.set_result(value)
    except InvalidStateError:
        pass


class ThreadedResolverHook(ResolverHook):
    """
    :param max_workers:
        Size of the thread pool created when no *executor* is given.
    :param executor:
        Run lookups on this executor instead. It is not shut down by
        :meth:`close`.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers, thread_name_prefix="fiberresolve-dns"
        )

    def resolve_address(
        self, hostname: str, timeout: float | None = None
    ) -> Future[typing.Any]:
        return self._submit(timeout, self._getaddrinfo, hostname)

    def resolve_name(self, ip_address: str) -> Future[typing.Any]:
        return self._submit(None, self._getnameinfo, ip_address)

    def _submit(
        self,
        timeout: float | None,
        fn: typing.Callable[..., typing.Any],
        *args: typing.Any,
    ) -> Future[typing.Any]:
        answer: Future[typing.Any] = Future()
        work = self._executor.submit(fn, *args)

        timer = None
        if timeout is not None:
            timer = threading.Timer(
                timeout, _settle, args=(answer,), kwargs={"exc": ResolutionError()}
            )
            timer.daemon = True
            timer.start()

        def done(work: Future[typing.Any]) -> None:
            if timer is not None:
                timer.cancel()
            exc = work.exception()
            if exc is not None:
                _settle(answer, exc=exc)
            else:
                _settle(answer, work.result())

        work.add_done_callback(done)
        return answer

    @staticmethod
    def _getaddrinfo(hostname: str) -> list[typing.Any]:
        try:
            return socket.getaddrinfo(hostname, None)
        except OSError as e:
            # An answer of "nothing found", not a refusal to answer.
            log.debug("Threaded getaddrinfo for %r failed: %r", hostname, e)
            return []

    @staticmethod
    def _getnameinfo(ip_address: str) -> str:
        try:
            host, _ = socket.getnameinfo((ip_address, 0), socket.NI_NAMEREQD)
        except OSError as e:
            log.debug("Threaded getnameinfo for %r failed: %r", ip_address, e)
            return ""
        return host

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)
