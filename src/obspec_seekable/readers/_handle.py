"""A single live ranged request against a store."""

from __future__ import annotations

import io
from collections.abc import AsyncIterator, Iterator
from typing import TYPE_CHECKING

from obspec_seekable.errors import IncompleteRangeError

if TYPE_CHECKING:
    from obspec import GetResult, GetResultAsync


class RangeHandle:
    """
    Sequential byte source backed by one `GetResult`.

    The handle streams the chunks of a (possibly ranged) `get()` response on
    demand and hands them out in caller-sized pieces. It never issues requests
    of its own: once the result is drained, reads return `b""`.

    A handle is iterated either synchronously (`__iter__`) or asynchronously
    (`__aiter__`), whichever is used first. obstore results support both.

    Parameters
    ----------
    result
        The result of `store.get()` or `store.get_async()`. `None` creates a
        handle that is already exhausted.
    start
        Absolute offset in the object of the first byte this handle yields.
    end
        Absolute offset the response is expected to run to. If the chunk
        stream stops before reaching it, reads raise
        [IncompleteRangeError][obspec_seekable.errors.IncompleteRangeError]
        instead of reporting the end of the range. `None` trusts the stream.
    """

    def __init__(
        self,
        result: GetResult | GetResultAsync | None,
        start: int = 0,
        end: int | None = None,
    ) -> None:
        self.start = start
        self.end = end
        self.consumed = 0
        self.closed = False
        self._result = result
        self._chunks: Iterator | None = None
        self._achunks: AsyncIterator | None = None
        self._pending = bytearray()
        self._exhausted = result is None

    @classmethod
    def empty(cls, start: int) -> RangeHandle:
        """Create an exhausted handle positioned at `start`."""
        return cls(None, start, start)

    @property
    def offset(self) -> int:
        """Absolute offset of the next byte this handle would yield."""
        return self.start + self.consumed

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed range handle")

    def _take(self, size: int) -> bytes:
        if size < 0 or size >= len(self._pending):
            data = bytes(self._pending)
            self._pending.clear()
        else:
            data = bytes(self._pending[:size])
            del self._pending[:size]
        self.consumed += len(data)
        return data

    def _needs_more(self, size: int) -> bool:
        return not self._exhausted and (size < 0 or len(self._pending) < size)

    def _finish(self) -> None:
        # A stream that stopped short was cut off (failed or cancelled body).
        received = self.offset + len(self._pending)
        if self.end is not None and received < self.end:
            raise IncompleteRangeError(
                f"Response ended at byte {received}, expected the range to end at {self.end}"
            )
        self._exhausted = True

    def _sync_chunks(self) -> Iterator:
        if self._chunks is None:
            if self._achunks is not None or not hasattr(self._result, "__iter__"):
                raise io.UnsupportedOperation(
                    "This range is being streamed asynchronously; use read_async()"
                )
            self._chunks = iter(self._result)
        return self._chunks

    def read(self, size: int | None = -1) -> bytes:
        """
        Read up to `size` bytes.

        Parameters
        ----------
        size
            Number of bytes to read. If -1 or None, read until the range is
            exhausted.

        Returns
        -------
        bytes
            Fewer than `size` bytes only when the range is exhausted.

        Raises
        ------
        IncompleteRangeError
            If the chunk stream stops before `end`.
        """
        self._check_open()
        if size is None:
            size = -1
        if size == 0:
            return b""
        while self._needs_more(size):
            try:
                chunk = next(self._sync_chunks())
            except StopIteration:
                self._finish()
                break
            self._pending += memoryview(chunk)
        return self._take(size)

    async def read_async(self, size: int | None = -1) -> bytes:
        """
        Read up to `size` bytes without blocking the event loop.

        Falls back to [`read()`][obspec_seekable.readers.RangeHandle.read] when
        the result cannot be iterated asynchronously or is already being
        iterated synchronously.
        """
        self._check_open()
        if self._chunks is not None or not hasattr(self._result, "__aiter__"):
            return self.read(size)
        if size is None:
            size = -1
        if size == 0:
            return b""
        if self._achunks is None and self._needs_more(size):
            self._achunks = self._result.__aiter__()
        while self._needs_more(size):
            try:
                chunk = await self._achunks.__anext__()
            except StopAsyncIteration:
                self._finish()
                break
            self._pending += memoryview(chunk)
        return self._take(size)

    def flush(self) -> None:
        """Flush the underlying result if it has anything to flush."""
        flush = getattr(self._result, "flush", None)
        if flush is not None:
            flush()

    async def flush_async(self) -> None:
        """Async counterpart of [`flush()`][obspec_seekable.readers.RangeHandle.flush]."""
        flush_async = getattr(self._result, "flush_async", None)
        if flush_async is not None:
            await flush_async()
        else:
            self.flush()

    def _release(self) -> tuple[object, Iterator | None, AsyncIterator | None]:
        released = self._result, self._chunks, self._achunks
        self.closed = True
        self._result = None
        self._chunks = None
        self._achunks = None
        self._pending = bytearray()
        self._exhausted = True
        return released

    def close(self) -> None:
        """
        Release the result and its chunk stream.

        Calling `close()` more than once is allowed. The result's own `close()`
        is called when it has one. An asynchronous chunk stream can only be
        closed by [`aclose()`][obspec_seekable.readers.RangeHandle.aclose];
        here it is dropped and left to the garbage collector.
        """
        if self.closed:
            return
        result, chunks, _ = self._release()
        for closeable in (chunks, result):
            close = getattr(closeable, "close", None)
            if close is not None:
                close()

    async def aclose(self) -> None:
        """Release the result, awaiting the async chunk stream's `aclose()` if any."""
        if self.closed:
            return
        result, chunks, achunks = self._release()
        aclose = getattr(achunks, "aclose", None)
        if aclose is not None:
            await aclose()
        for closeable in (chunks, result):
            close = getattr(closeable, "close", None)
            if close is not None:
                close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"offset={self.offset}"
        return f"<RangeHandle start={self.start} {state}>"


__all__ = ["RangeHandle"]
