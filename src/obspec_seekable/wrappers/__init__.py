"""Store wrappers that add functionality to underlying stores.

This module provides a transparent tracing wrapper for any store a
seekable reader can read from.
"""

from obspec_seekable.wrappers._tracing import (
    RequestRecord,
    RequestTrace,
    TracingStore,
)

__all__ = [
    "TracingStore",
    "RequestTrace",
    "RequestRecord",
]
