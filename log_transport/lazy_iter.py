"""Peekable buffered stream over an async iterator, with pause/resume."""

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
TRaw = TypeVar("TRaw")


class StreamExhaustedError(Exception):
    """Raised by next() when the source is finished and the buffer is empty."""

    def __init__(self, message: str = "No more items to consume"):
        super().__init__(message)


class LazyIter(Generic[T, TRaw]):
    """Lookahead-capable view over an async source.

    A background pull loop moves raw chunks from *source* into an internal
    buffer, optionally passing each chunk through *transform*, which may
    return a single item or a list of zero or more items. Consumers
    either peek at the oldest buffered item (non-destructive) or take it
    with next().

    Callers that find the buffer empty park a future in one of two FIFO
    queues. Every appended item releases at most one peek-waiter and one
    next-waiter, oldest first. Waiters re-check the buffer after waking,
    so a peek-waiter never consumes and a next-waiter shifts the item off
    the buffer itself.

    Must be constructed inside a running event loop; pulling starts
    immediately.
    """

    def __init__(
        self,
        source: AsyncIterator[TRaw],
        transform: Optional[Callable[[TRaw], Union[T, list[T]]]] = None,
    ):
        self._source = source
        self._transform = transform
        self._buffer: deque = deque()
        self._peek_waiters: deque[asyncio.Future] = deque()
        self._next_waiters: deque[asyncio.Future] = deque()
        self._finished = False
        self._reading = True
        self._task: Optional[asyncio.Task] = asyncio.get_running_loop().create_task(self._loop())

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def done(self) -> bool:
        """True only when the source is exhausted AND the buffer is drained."""
        return self._finished and not self._buffer

    @property
    def reading(self) -> bool:
        return self._reading

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    # ------------------------------------------------------------------
    # Flow control
    # ------------------------------------------------------------------

    def pause(self) -> None:
        """Stop pulling once the chunk currently awaited has been handled."""
        self._reading = False

    def resume(self) -> bool:
        """Restart pulling. Returns False if the source already finished."""
        if self._finished:
            return False

        self._reading = True
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._loop())
        return True

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    async def peek(self) -> Optional[T]:
        """Return the oldest buffered item without removing it.

        Suspends while the buffer is empty and the source may still produce;
        returns None once the stream is done.
        """
        while not self._buffer:
            if self._finished:
                return None
            await self._wait(self._peek_waiters)
        return self._buffer[0]

    async def peek_and(self, predicate: Callable[[T], bool]) -> Optional[T]:
        """peek(), but None when the peeked item is rejected by *predicate*."""
        peeked = await self.peek()
        if peeked is None:
            return None
        return peeked if predicate(peeked) else None

    async def next(self) -> T:
        """Remove and return the oldest buffered item.

        Raises StreamExhaustedError when the stream is done, including for
        callers that were waiting when the source finished.
        """
        while not self._buffer:
            if self._finished:
                raise StreamExhaustedError()
            await self._wait(self._next_waiters)
        return self._buffer.popleft()

    async def aclose(self) -> None:
        """Cancel the pull loop and finish the stream."""
        self._reading = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._finish()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _wait(self, waiters: deque) -> None:
        future = asyncio.get_running_loop().create_future()
        waiters.append(future)
        await future

    @staticmethod
    def _release_one(waiters: deque) -> None:
        while waiters:
            future = waiters.popleft()
            if not future.done():
                future.set_result(None)
                return

    def _push(self, item: T) -> None:
        self._buffer.append(item)
        self._release_one(self._peek_waiters)
        self._release_one(self._next_waiters)

    def _items(self, raw: TRaw) -> list:
        if self._transform is None:
            return [raw]
        transformed = self._transform(raw)
        if isinstance(transformed, (list, tuple)):
            return list(transformed)
        return [transformed]

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._reading = False

        # Peek-waiters wake up and re-check; next-waiters are rejected.
        while self._peek_waiters:
            future = self._peek_waiters.popleft()
            if not future.done():
                future.set_result(None)
        while self._next_waiters:
            future = self._next_waiters.popleft()
            if not future.done():
                future.set_exception(StreamExhaustedError())

    async def _loop(self) -> None:
        while self._reading:
            try:
                raw = await self._source.__anext__()
            except StopAsyncIteration:
                self._finish()
                return
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Input source failed, treating as end of stream")
                self._finish()
                return

            if not raw:
                continue
            try:
                items = self._items(raw)
            except Exception:
                logger.exception("Dropping chunk the transform could not handle")
                continue
            for item in items:
                self._push(item)
