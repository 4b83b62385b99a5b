"""Protocols for range-addressable stores and seekable files.

This module defines the core protocols used throughout obspec-seekable.
"""

from obspec_seekable.protocols._protocols import (
    AsyncRangeSource,
    RangeSource,
    SeekableFile,
)

__all__ = ["RangeSource", "AsyncRangeSource", "SeekableFile"]
