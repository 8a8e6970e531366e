"""
Hook that performs lookups on a trio event loop.

The loop runs in a background thread for the lifetime of the hook; each
lookup is started there with :func:`trio.socket.getaddrinfo` or
:func:`trio.socket.getnameinfo` and reported back through a
:class:`concurrent.futures.Future`. The timeout hint of a request is
enforced with a trio cancel scope: when it expires the fiber gets a
:class:`~fiberresolve.exceptions.ResolutionError`.

Requires the ``trio`` extra::

    pip install fiberresolve[trio]
"""

from __future__ import annotations

import concurrent.futures
import logging
import socket
import threading
import typing
from concurrent.futures import Future

import trio

from ..exceptions import FiberResolveError, ResolutionError
from ..hook import ResolverHook

log = logging.getLogger(__name__)

#: Seconds to wait for the trio thread to come up.
STARTUP_TIMEOUT = 5.0


class TrioResolverHook(ResolverHook):
    def __init__(self) -> None:
        self._ready = threading.Event()
        self._trio_token: trio.lowlevel.TrioToken | None = None
        self._nursery: trio.Nursery | None = None
        self._stop: trio.Event | None = None

        self._executor = concurrent.futures.ThreadPoolExecutor(
            1, thread_name_prefix="fiberresolve trio"
        )
        self._loop = self._executor.submit(trio.run, self._main)
        self._ready.wait(STARTUP_TIMEOUT)
        if not self._ready.is_set():
            self._executor.shutdown(wait=False)
            raise FiberResolveError("trio resolver loop failed to start")

    async def _main(self) -> None:
        self._trio_token = trio.lowlevel.current_trio_token()
        self._stop = trio.Event()
        async with trio.open_nursery() as nursery:
            self._nursery = nursery
            self._ready.set()
            await self._stop.wait()
            nursery.cancel_scope.cancel()

    def _start(
        self,
        fn: typing.Callable[..., typing.Awaitable[None]],
        *args: typing.Any,
    ) -> Future[typing.Any]:
        if self._nursery is None or self._loop.done():
            raise FiberResolveError("trio resolver loop is not running")
        answer: Future[typing.Any] = Future()
        trio.from_thread.run_sync(
            self._nursery.start_soon, fn, answer, *args, trio_token=self._trio_token
        )
        return answer

    def resolve_address(
        self, hostname: str, timeout: float | None = None
    ) -> Future[typing.Any]:
        return self._start(self._getaddrinfo, hostname, timeout)

    def resolve_name(self, ip_address: str) -> Future[typing.Any]:
        return self._start(self._getnameinfo, ip_address)

    async def _getaddrinfo(
        self, answer: Future[typing.Any], hostname: str, timeout: float | None
    ) -> None:
        if timeout is not None:
            scope = trio.move_on_after(timeout)
        else:
            scope = trio.CancelScope()
        try:
            with scope:
                try:
                    entries = await trio.socket.getaddrinfo(hostname, None)
                except OSError as e:
                    log.debug("trio getaddrinfo for %r failed: %r", hostname, e)
                    entries = []
                answer.set_result(entries)
            if scope.cancelled_caught:
                answer.set_exception(ResolutionError())
        finally:
            if not answer.done():
                # The loop is shutting down, let the system resolver answer.
                answer.set_result(None)

    async def _getnameinfo(self, answer: Future[typing.Any], ip_address: str) -> None:
        try:
            try:
                host, _ = await trio.socket.getnameinfo(
                    (ip_address, 0), socket.NI_NAMEREQD
                )
            except OSError as e:
                log.debug("trio getnameinfo for %r failed: %r", ip_address, e)
                host = ""
            answer.set_result(host)
        finally:
            if not answer.done():
                answer.set_result(None)

    def close(self) -> None:
        if not self._loop.done() and self._stop is not None:
            trio.from_thread.run_sync(self._stop.set, trio_token=self._trio_token)
        try:
            self._loop.result()
        finally:
            self._executor.shutdown(wait=True)
