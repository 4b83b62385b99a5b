"""Exceptions raised by obspec-seekable readers."""

from __future__ import annotations


class SeekableReaderError(OSError):
    """Base class for errors raised by a seekable reader itself.

    Errors raised by the underlying store (not found, permission denied,
    transport failures) are propagated unchanged and do not derive from this.
    """


class IncompleteRangeError(SeekableReaderError):
    """Raised when a response body ends before the end of its requested range."""


class BrokenReaderError(SeekableReaderError):
    """
    Raised when using a reader whose last request or response body failed.

    This happens after a seek whose range request failed, or after a read whose
    chunk stream failed partway through. The reader has nothing left to read
    from. The error that broke the reader is available as ``__cause__``.
    """


__all__ = ["SeekableReaderError", "IncompleteRangeError", "BrokenReaderError"]
