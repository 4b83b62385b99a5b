"""Seekable reader that re-requests a byte range on every seek."""

from __future__ import annotations

import asyncio
import io
import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from obspec_seekable.errors import BrokenReaderError
from obspec_seekable.readers._handle import RangeHandle
from obspec_seekable.typing import ObjectRef, Path, Url

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from obspec import GetResult, GetResultAsync

    from obspec_seekable.protocols import AsyncRangeSource, RangeSource

logger = logging.getLogger(__name__)


# Reader states. A reader is always in exactly one of these; the position and
# the handle it refers to only ever change together.


@dataclass(frozen=True)
class _Unopened:
    pass


@dataclass(frozen=True)
class _Open:
    position: int
    # None after a cancelled read_async; the next read re-requests from position.
    handle: RangeHandle | None


@dataclass(frozen=True)
class _Broken:
    cause: BaseException


@dataclass(frozen=True)
class _Closed:
    pass


_UNOPENED = _Unopened()
_CLOSED = _Closed()


def _release(what: str, release: Callable[[], Any]) -> None:
    try:
        release()
    except Exception:
        logger.debug("Ignoring error while releasing %s", what, exc_info=True)


async def _release_async(what: str, release: Callable[[], Awaitable[Any]]) -> None:
    try:
        await release()
    except Exception:
        logger.debug("Ignoring error while releasing %s", what, exc_info=True)


class SeekableStoreReader:
    """
    A read-only, seekable file-like view of a single object in a store.

    The reader opens the object with one full-object `get()` request, which
    also reveals the object's size, and then streams it sequentially. Object
    stores have no cursor that can be moved, so every seek to a new position
    discards the current response and issues a new ranged request for
    `[position, size)`. Seeking to the current position is free.

    The cost of that emulation is made visible through
    [`seek_count`][obspec_seekable.readers.SeekableStoreReader.seek_count] and
    [`seek_wait`][obspec_seekable.readers.SeekableStoreReader.seek_wait], the
    total time spent blocked on requests triggered by seeks.

    When to Use
    -----------
    Use SeekableStoreReader when:

    - **Mostly sequential reads with occasional jumps**: e.g., skipping a
      header, reading a trailer, or resuming from an offset.
    - **Large objects that should not be held in memory**: data is streamed;
      nothing already read is kept.
    - **Consumers that need a real file handle**: `read`, `readinto`, `seek`,
      `tell` and context-manager support.

    Consider alternatives when:

    - Access is random and seek-heavy. Each seek is a full network round-trip;
      a reader with a block cache, or loading the object eagerly, will be
      much faster. A growing `seek_wait` is the signal to switch.

    Notes
    -----
    **Thread Safety**: not safe for concurrent use. Serialize calls from
    multiple threads or tasks yourself.

    **Async**: the reader can be opened and read without blocking the event
    loop (`open_async`, `read_async`), but `seek()` always blocks on the
    range request.

    Examples
    --------
    ```python
    from obstore.store import S3Store
    from obspec_seekable import SeekableStoreReader

    store = S3Store(bucket="my-bucket")
    with SeekableStoreReader.open(store, "s3://my-bucket", "data/report.csv") as reader:
        header = reader.read(1024)
        reader.seek(-4096, 2)
        trailer = reader.read()
        print(reader.seek_count, reader.seek_wait)
    ```
    """

    def __init__(
        self,
        store: RangeSource | AsyncRangeSource,
        ref: ObjectRef,
        *,
        leave_open: bool = True,
    ) -> None:
        """
        Create an unopened reader.

        Prefer [`open()`][obspec_seekable.readers.SeekableStoreReader.open] or
        [`open_async()`][obspec_seekable.readers.SeekableStoreReader.open_async],
        which also perform the initial request.

        Parameters
        ----------
        store
            Any object implementing [Get][obspec.Get] (and
            [GetAsync][obspec.GetAsync] for `open_async`).
        ref
            The object to read.
        leave_open
            If False, the reader owns `store` and closes it when the reader is
            closed. If True (default), the caller remains responsible for it.
        """
        self._store = store
        self._ref = ref
        self._leave_open = leave_open
        self._length = 0
        self._state: _Unopened | _Open | _Broken | _Closed = _UNOPENED
        self._seek_count = 0
        self._seek_wait = 0.0

    # --- Opening ---

    @classmethod
    def open(
        cls,
        store: RangeSource,
        container: str,
        key: Path,
        *,
        leave_open: bool = True,
    ) -> SeekableStoreReader:
        """
        Open an object for reading.

        Parameters
        ----------
        store
            Any object implementing [Get][obspec.Get].
        container
            Identifier of the bucket or base URL `store` is bound to.
        key
            Path of the object within `store`.
        leave_open
            If False, close `store` when the reader is closed.

        Returns
        -------
        SeekableStoreReader
            A reader positioned at offset 0.

        Raises
        ------
        Exception
            Whatever the store raises for the initial request (not found,
            permission denied, transport errors). The reader is closed first.
        """
        reader = cls(store, ObjectRef(container, key), leave_open=leave_open)
        try:
            logger.debug("Opening %s", reader._ref)
            reader._install(reader._store.get(key))
        except BaseException:
            reader.close()
            raise
        return reader

    @classmethod
    async def open_async(
        cls,
        store: AsyncRangeSource,
        container: str,
        key: Path,
        *,
        leave_open: bool = True,
    ) -> SeekableStoreReader:
        """
        Open an object for reading without blocking the event loop.

        Same as [`open()`][obspec_seekable.readers.SeekableStoreReader.open],
        but the initial request uses [`get_async()`][obspec.GetAsync].
        """
        reader = cls(store, ObjectRef(container, key), leave_open=leave_open)
        try:
            logger.debug("Opening %s", reader._ref)
            reader._install(await reader._store.get_async(key))
        except BaseException:
            await reader.aclose()
            raise
        return reader

    def _install(self, result: GetResult | GetResultAsync) -> None:
        try:
            self._length = int(result.meta["size"])
        except BaseException:
            _release("response", RangeHandle(result).close)
            raise
        self._state = _Open(position=0, handle=RangeHandle(result, 0, self._length))
        logger.debug("Opened %s (%d bytes)", self._ref, self._length)

    def _open_state(self) -> _Open:
        state = self._state
        if isinstance(state, _Open):
            return state
        if isinstance(state, _Broken):
            raise BrokenReaderError(
                f"Reader for {self._ref} has no response to read from after a failed request"
            ) from state.cause
        raise ValueError("I/O operation on closed file")

    def _break(self, state: _Open, cause: BaseException) -> None:
        self._state = _Broken(cause)
        logger.debug(
            "Response for %s failed at byte %d", self._ref, state.position, exc_info=True
        )
        _release("range handle", state.handle.close)

    # --- Range requests ---

    def _request(self, target: int) -> RangeHandle:
        # The store rejects empty ranges; nothing is left to read anyway.
        if target >= self._length:
            return RangeHandle.empty(target)
        result = self._store.get(
            self._ref.key, options={"range": (target, self._length)}
        )
        return RangeHandle(result, target, self._length)

    async def _request_async(self, target: int) -> RangeHandle:
        if target >= self._length or not hasattr(self._store, "get_async"):
            return self._request(target)
        result = await self._store.get_async(
            self._ref.key, options={"range": (target, self._length)}
        )
        return RangeHandle(result, target, self._length)

    def _resume(self, state: _Open) -> _Open:
        if state.handle is not None:
            return state
        logger.debug("Re-requesting %s from %d", self._ref, state.position)
        try:
            handle = self._request(state.position)
        except BaseException as e:
            self._state = _Broken(e)
            raise
        self._state = state = replace(state, handle=handle)
        return state

    async def _resume_async(self, state: _Open) -> _Open:
        if state.handle is not None:
            return state
        logger.debug("Re-requesting %s from %d", self._ref, state.position)
        try:
            handle = await self._request_async(state.position)
        except asyncio.CancelledError:
            raise
        except BaseException as e:
            self._state = _Broken(e)
            raise
        self._state = state = replace(state, handle=handle)
        return state

    # --- Reading ---

    def read(self, size: int | None = -1, /) -> bytes:
        """
        Read up to `size` bytes from the current position.

        Parameters
        ----------
        size
            Number of bytes to read. If -1 or None, read to the end of the object.

        Returns
        -------
        bytes
            The data read. Shorter than `size` only at the end of the object.
            The position advances by the number of bytes returned.

        Raises
        ------
        Exception
            Whatever the response's chunk stream raises, or
            [IncompleteRangeError][obspec_seekable.errors.IncompleteRangeError]
            if it ends before the end of the object. The reader is then broken
            and later operations raise `BrokenReaderError`.
        """
        state = self._resume(self._open_state())
        try:
            data = state.handle.read(size)
        except io.UnsupportedOperation:
            raise
        except BaseException as e:
            self._break(state, e)
            raise
        self._state = replace(state, position=state.position + len(data))
        return data

    async def read_async(self, size: int | None = -1, /) -> bytes:
        """
        Read up to `size` bytes without blocking the event loop.

        Same contract as [`read()`][obspec_seekable.readers.SeekableStoreReader.read].

        Cancelling the call only cancels the in-flight chunk fetch: the
        position does not move, the interrupted response is released, and the
        next read requests `[position, length)` again.
        """
        state = await self._resume_async(self._open_state())
        try:
            data = await state.handle.read_async(size)
        except io.UnsupportedOperation:
            raise
        except asyncio.CancelledError:
            self._state = replace(state, handle=None)
            await _release_async("range handle", state.handle.aclose)
            raise
        except BaseException as e:
            self._break(state, e)
            raise
        self._state = replace(state, position=state.position + len(data))
        return data

    def readall(self) -> bytes:
        """Read from the current position to the end of the object."""
        return self.read(-1)

    def readinto(self, buffer: Any, /) -> int:
        """
        Read bytes into a pre-allocated, writable buffer.

        Returns
        -------
        int
            The number of bytes read (0 at the end of the object).
        """
        view = memoryview(buffer).cast("B")
        data = self.read(len(view))
        view[: len(data)] = data
        return len(data)

    # --- Positioning ---

    def seek(self, offset: int, whence: int = io.SEEK_SET, /) -> int:
        """
        Move the read position.

        Any move to a different position releases the current response and
        blocks on a new range request for `[position, length)`.

        Parameters
        ----------
        offset
            Position offset.
        whence
            Reference point: 0=start (SEEK_SET), 1=current (SEEK_CUR), 2=end (SEEK_END).

        Returns
        -------
        int
            The new absolute position. Positions past the end are clamped to
            the object's length.

        Raises
        ------
        ValueError
            For an unknown `whence` or a negative resulting position. Such
            calls are not counted in `seek_count`.
        BrokenReaderError
            On any later operation if the range request fails; the store's
            error is raised from this call.

        Notes
        -----
        `seek()` is synchronous, so the previous response is released with its
        synchronous `close()`. If it was being streamed through `read_async()`,
        its async chunk iterator is dropped without `aclose()` and finalized by
        the garbage collector.
        """
        state = self._open_state()
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = state.position + offset
        elif whence == io.SEEK_END:
            target = self._length + offset
        else:
            raise ValueError(f"Invalid whence value: {whence}")
        if target < 0:
            raise ValueError(f"Negative seek position {target}")

        self._seek_count += 1
        target = min(target, self._length)
        if target == state.position:
            logger.debug("Seek to current position %d of %s", target, self._ref)
            return target

        if state.handle is not None:
            _release("range handle", state.handle.close)
        self._state = self._fetch_from(target)
        return target

    def _fetch_from(self, target: int) -> _Open:
        if target >= self._length:
            return _Open(position=target, handle=RangeHandle.empty(target))

        start_time = time.perf_counter()
        try:
            handle = self._request(target)
        except BaseException as e:
            self._state = _Broken(e)
            raise
        finally:
            elapsed = time.perf_counter() - start_time
            self._seek_wait += elapsed
            logger.debug(
                "Seek to %d of %s waited %.6fs on a range request",
                target,
                self._ref,
                elapsed,
            )
        return _Open(position=target, handle=handle)

    def tell(self) -> int:
        """Return the current position in bytes from the start of the object."""
        return self._open_state().position

    @property
    def position(self) -> int:
        """The current position. Assigning to it is `seek(value, SEEK_SET)`."""
        return self.tell()

    @position.setter
    def position(self, value: int) -> None:
        self.seek(value, io.SEEK_SET)

    @property
    def length(self) -> int:
        """Total size of the object in bytes, as reported when it was opened."""
        return self._length

    @property
    def size(self) -> int:
        """Alias of [`length`][obspec_seekable.readers.SeekableStoreReader.length]."""
        return self._length

    # --- Instrumentation ---

    @property
    def seek_count(self) -> int:
        """Number of valid `seek()` calls, including ones that did not move."""
        return self._seek_count

    @property
    def seek_wait(self) -> float:
        """Total seconds spent blocked on range requests issued by `seek()`."""
        return self._seek_wait

    # --- File-like surface ---

    @property
    def ref(self) -> ObjectRef:
        """The object being read."""
        return self._ref

    @property
    def name(self) -> Url:
        """URL of the object being read."""
        return self._ref.url

    @property
    def closed(self) -> bool:
        return isinstance(self._state, (_Unopened, _Closed))

    def readable(self) -> bool:
        return isinstance(self._state, _Open)

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def flush(self) -> None:
        """Flush the current response. Nothing is buffered for writing, so this rarely does anything."""
        handle = self._open_state().handle
        if handle is not None:
            handle.flush()

    async def flush_async(self) -> None:
        handle = self._open_state().handle
        if handle is not None:
            await handle.flush_async()

    def write(self, data: Any, /) -> int:
        raise io.UnsupportedOperation("SeekableStoreReader is read-only")

    def truncate(self, size: int | None = None, /) -> int:
        raise io.UnsupportedOperation("SeekableStoreReader is read-only")

    # --- Teardown ---

    def close(self) -> None:
        """
        Release the current response and, if the reader owns it, the store.

        Safe to call any number of times, including after a failed open or
        seek. Errors raised while releasing are logged and ignored.
        """
        if isinstance(self._state, _Closed):
            return
        state, self._state = self._state, _CLOSED
        if isinstance(state, _Open) and state.handle is not None:
            _release("range handle", state.handle.close)
        if not self._leave_open:
            _release("store", self._close_store)

    async def aclose(self) -> None:
        """Async counterpart of [`close()`][obspec_seekable.readers.SeekableStoreReader.close]."""
        if isinstance(self._state, _Closed):
            return
        state, self._state = self._state, _CLOSED
        if isinstance(state, _Open) and state.handle is not None:
            await _release_async("range handle", state.handle.aclose)
        if not self._leave_open:
            await _release_async("store", self._close_store_async)

    def _close_store(self) -> None:
        close = getattr(self._store, "close", None)
        if callable(close):
            close()
        elif hasattr(self._store, "__exit__"):
            self._store.__exit__(None, None, None)

    async def _close_store_async(self) -> None:
        if hasattr(self._store, "aclose"):
            await self._store.aclose()
        elif hasattr(self._store, "__aexit__"):
            await self._store.__aexit__(None, None, None)
        else:
            self._close_store()

    def __enter__(self) -> "SeekableStoreReader":
        """Enter the context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the context manager and close the reader."""
        self.close()

    async def __aenter__(self) -> "SeekableStoreReader":
        """Enter the async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the async context manager and close the reader."""
        await self.aclose()

    def __repr__(self) -> str:
        state = self._state
        if isinstance(state, _Open):
            detail = f"position={state.position} length={self._length}"
        else:
            detail = type(state).__name__.lstrip("_").lower()
        return f"<SeekableStoreReader {self._ref.url!r} {detail}>"


__all__ = ["SeekableStoreReader"]
