"""Core protocol definitions for range-addressable stores and seekable files."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from obspec import Get, GetAsync


@runtime_checkable
class RangeSource(Get, Protocol):
    """
    The store capability consumed by
    [`SeekableStoreReader`][obspec_seekable.readers.SeekableStoreReader].

    This is just [Get][obspec.Get]: `get(path, options=...)` returns a
    `GetResult` whose `meta["size"]` is the total object size and which can be
    iterated to stream the object's bytes. Passing
    `options={"range": (start, end)}` limits the result to `[start, end)`.

    Any obstore store ([S3Store][obstore.store.S3Store],
    [HTTPStore][obstore.store.HTTPStore],
    [MemoryStore][obstore.store.MemoryStore], ...) satisfies this protocol.
    """

    pass


@runtime_checkable
class AsyncRangeSource(GetAsync, Protocol):
    """
    Async counterpart of [RangeSource][obspec_seekable.protocols.RangeSource].

    Only used to open a reader with
    [`SeekableStoreReader.open_async`][obspec_seekable.readers.SeekableStoreReader.open_async].
    Seeking always goes through the synchronous `get()`.
    """

    pass


@runtime_checkable
class SeekableFile(Protocol):
    """
    Protocol for read-only, seekable file-like objects.

    This is the minimal interface expected by libraries that accept file
    handles (e.g., h5py, zarr). [`SeekableStoreReader`][obspec_seekable.readers.SeekableStoreReader]
    implements it.

    !!! Warning
        It's recommended to define your own protocols. This protocol may change without warning.
    """

    def read(self, size: int = -1, /) -> bytes:
        """
        Read up to `size` bytes from the file.

        Parameters
        ----------
        size
            Number of bytes to read. If -1, read until EOF.

        Returns
        -------
        bytes
            The data read from the file.
        """
        ...

    def seek(self, offset: int, whence: int = 0, /) -> int:
        """
        Move to a new file position.

        Parameters
        ----------
        offset
            Position offset.
        whence
            Reference point: 0=start (SEEK_SET), 1=current (SEEK_CUR), 2=end (SEEK_END).

        Returns
        -------
        int
            The new absolute position.
        """
        ...

    def tell(self) -> int:
        """Return the current file position."""
        ...


__all__ = ["RangeSource", "AsyncRangeSource", "SeekableFile"]
