"""File-like readers for object stores.

This module provides a reader that wraps a range-addressable object store with
a seekable, read-only file-like interface (read, seek, tell).
"""

from obspec_seekable.readers._handle import RangeHandle
from obspec_seekable.readers._seekable import SeekableStoreReader

__all__ = [
    "RangeHandle",
    "SeekableStoreReader",
]
