"""Bridge a blocking token producer on a worker thread to an async stream.

The producer runs in an executor thread and pushes fragments through a
bounded ``asyncio.Queue``.  A full queue stalls the producer thread (never
the event loop), which is the only backpressure.  When the consumer goes
away the stream is marked closed and the producer's next ``send()``
returns ``False``, which is the cancellation signal.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from concurrent.futures import Executor
from typing import Any, AsyncGenerator, Callable

_logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 32

# How often a blocked producer re-checks whether the consumer left
_POLL_INTERVAL = 0.05

_END = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class TokenStream:
    """Single-producer, single-consumer channel between a thread and a loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # ------------------------------------------------------------------
    # Producer side (worker thread)
    # ------------------------------------------------------------------

    def send(self, fragment: str) -> bool:
        """Blocking push.  Returns ``False`` once the consumer has gone."""
        return self._put(fragment)

    def fail(self, error: BaseException) -> None:
        """End the stream with *error* as its terminal item."""
        self._put(_Failure(error))

    def finish(self) -> None:
        """End the stream normally."""
        self._put(_END)

    def _put(self, item: Any) -> bool:
        if self._closed.is_set():
            return False
        try:
            fut = asyncio.run_coroutine_threadsafe(self._queue.put(item), self._loop)
        except RuntimeError:
            # Event loop already closed
            self._closed.set()
            return False
        while True:
            try:
                fut.result(timeout=_POLL_INTERVAL)
                return True
            except concurrent.futures.TimeoutError:
                if self._closed.is_set():
                    fut.cancel()
                    return False
            except concurrent.futures.CancelledError:
                self._closed.set()
                return False

    # ------------------------------------------------------------------
    # Consumer side (event loop)
    # ------------------------------------------------------------------

    async def get(self) -> str | None:
        """Next fragment, ``None`` at normal end; raises the terminal error."""
        item = await self._queue.get()
        if item is _END:
            self._closed.set()
            return None
        if isinstance(item, _Failure):
            self._closed.set()
            raise item.error
        return item

    def close(self) -> None:
        """Consumer is done.  Unblocks a producer waiting on a full queue."""
        self._closed.set()
        while not self._queue.empty():
            self._queue.get_nowait()


async def stream_from_worker(
    work: Callable[[TokenStream], Any],
    executor: Executor | None = None,
    capacity: int = DEFAULT_CAPACITY,
) -> AsyncGenerator[str, None]:
    """Run ``work(stream)`` on a worker thread and yield what it sends.

    An exception raised by *work* becomes the stream's terminal error.
    Closing or dropping the returned generator closes the channel.
    """
    loop = asyncio.get_running_loop()
    stream = TokenStream(loop, capacity)

    def _target() -> None:
        try:
            work(stream)
        except Exception as e:
            _logger.debug("Worker failed: %s", e)
            stream.fail(e)
        else:
            stream.finish()

    loop.run_in_executor(executor, _target)
    try:
        while True:
            fragment = await stream.get()
            if fragment is None:
                return
            yield fragment
    finally:
        stream.close()
