"""Request tracing for stores used by seekable readers.

This module provides a wrapper that records every `get` request a store
receives, useful for counting the range requests caused by seeks, debugging,
and visualizing access patterns.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, TypedDict

if TYPE_CHECKING:
    from obspec import GetOptions, GetResult, GetResultAsync, ObjectMeta

    from obspec_seekable.protocols import AsyncRangeSource, RangeSource

RangeStyle = Literal["bounded", "offset", "suffix"]


class _TraceInfo(TypedDict, total=False):
    """Info collected during a traced operation."""

    start: int
    length: int
    range_style: RangeStyle | None


@dataclass
class RequestRecord:
    """Record of a single request.

    Note
    ----
    ``duration`` measures the time spent in the store method call. Stores that
    stream their results (like obstore) return before the body is transferred,
    so it is mostly time-to-first-byte.
    """

    path: str
    start: int
    length: int
    end: int  # start + length
    timestamp: float
    duration: float | None = None
    method: Literal["get", "head"] = "get"
    range_style: RangeStyle | None = None


@dataclass
class RequestTrace:
    """Collection of request records with analysis methods."""

    requests: list[RequestRecord] = field(default_factory=list)

    def add(
        self,
        path: str,
        start: int,
        length: int,
        timestamp: float,
        duration: float | None = None,
        method: Literal["get", "head"] = "get",
        range_style: RangeStyle | None = None,
    ) -> None:
        """Add a request record."""
        self.requests.append(
            RequestRecord(
                path=path,
                start=start,
                length=length,
                end=start + length,
                timestamp=timestamp,
                duration=duration,
                method=method,
                range_style=range_style,
            )
        )

    def clear(self) -> None:
        """Clear all recorded requests."""
        self.requests.clear()

    def to_dataframe(self):
        """Convert to a pandas DataFrame, one row per request."""
        try:
            import pandas as pd
        except ImportError as e:
            raise ImportError(
                "pandas is required for RequestTrace.to_dataframe(). "
                "Install it with: pip install obspec-seekable[tracing]"
            ) from e

        columns = [
            "path",
            "start",
            "length",
            "end",
            "timestamp",
            "duration",
            "method",
            "range_style",
        ]
        return pd.DataFrame(
            [{name: getattr(r, name) for name in columns} for r in self.requests],
            columns=columns,
        )

    @property
    def total_bytes(self) -> int:
        """Total bytes requested."""
        return sum(r.length for r in self.requests)

    @property
    def total_requests(self) -> int:
        """Total number of requests."""
        return len(self.requests)

    @property
    def ranged_requests(self) -> int:
        """Number of `get` requests that asked for an explicit range."""
        return sum(1 for r in self.requests if r.range_style is not None)

    def summary(self) -> dict[str, Any]:
        """Get summary statistics."""
        if not self.requests:
            return {
                "total_requests": 0,
                "total_bytes": 0,
                "unique_files": 0,
            }

        lengths = [r.length for r in self.requests]
        durations = [r.duration for r in self.requests if r.duration is not None]

        return {
            "total_requests": len(self.requests),
            "ranged_requests": self.ranged_requests,
            "total_bytes": sum(lengths),
            "unique_files": len({r.path for r in self.requests}),
            "min_request_size": min(lengths),
            "max_request_size": max(lengths),
            "mean_request_size": sum(lengths) / len(lengths),
            "total_duration": sum(durations),
        }


def _describe_range(options: GetOptions | None, size: int) -> _TraceInfo:
    """Translate `options["range"]` into a start, length and style."""
    range_opt = (options or {}).get("range")
    if range_opt is None:
        return {"start": 0, "length": size, "range_style": None}
    if isinstance(range_opt, dict):
        if (offset := range_opt.get("offset")) is not None:
            return {
                "start": offset,
                "length": max(size - offset, 0),
                "range_style": "offset",
            }
        suffix = min(range_opt.get("suffix", 0), size)
        return {"start": size - suffix, "length": suffix, "range_style": "suffix"}
    start, end = range_opt[0], range_opt[1]
    return {"start": start, "length": end - start, "range_style": "bounded"}


class TracingStore:
    """
    A wrapper that traces all requests made to an underlying store.

    Every `get`, `get_async`, `head` and `head_async` call is recorded in a
    [RequestTrace][obspec_seekable.wrappers.RequestTrace]. Any other attribute
    (including `close`) is forwarded to the wrapped store, so wrapping does
    not change who closes it.

    Examples
    --------
    ```python
    import obstore as obs
    from obspec_seekable import SeekableStoreReader
    from obspec_seekable.wrappers import RequestTrace, TracingStore

    store = obs.store.from_url("s3://bucket", region="us-east-1")
    trace = RequestTrace()

    with SeekableStoreReader.open(TracingStore(store, trace), "s3://bucket", "big.bin") as reader:
        reader.seek(1_000_000)
        reader.read(100)

    print(trace.summary())  # 2 requests: the open and one ranged get
    ```
    """

    def __init__(
        self,
        store: RangeSource | AsyncRangeSource,
        trace: RequestTrace,
        *,
        on_request: Callable[[RequestRecord], None] | None = None,
    ) -> None:
        """
        Create a tracing wrapper around a store.

        Parameters
        ----------
        store
            Any object implementing [Get][obspec.Get] and/or
            [GetAsync][obspec.GetAsync].
        trace
            RequestTrace instance to record requests to.
        on_request
            Optional callback called for each request (e.g., for logging).
        """
        self._store = store
        self._trace = trace
        self._on_request = on_request

    def __getattr__(self, name: str) -> Any:
        """Forward unknown attributes to the underlying store."""
        return getattr(self._store, name)

    @contextmanager
    def _record(
        self,
        path: str,
        method: Literal["get", "head"],
    ) -> Generator[_TraceInfo, None, None]:
        """Record a request with automatic timing.

        Yields a dict that the caller populates with start, length, and
        range_style. Records are saved even if the operation raises.
        """
        info: _TraceInfo = {}
        start_time = time.time()
        try:
            yield info
        finally:
            duration = time.time() - start_time
            self._trace.add(
                path=path,
                start=info.get("start", 0),
                length=info.get("length", 0),
                timestamp=start_time,
                duration=duration,
                method=method,
                range_style=info.get("range_style"),
            )
            if self._on_request:
                self._on_request(self._trace.requests[-1])

    def get(self, path: str, *, options: GetOptions | None = None) -> GetResult:
        """Get a file or a range of it (delegates to underlying store)."""
        with self._record(path, "get") as info:
            info.update(_describe_range(options, 0))
            result = self._store.get(path, options=options)
            info.update(_describe_range(options, result.meta.get("size", 0)))
            return result

    async def get_async(
        self, path: str, *, options: GetOptions | None = None
    ) -> GetResultAsync:
        """Async version of [`get()`][obspec_seekable.wrappers.TracingStore.get]."""
        with self._record(path, "get") as info:
            info.update(_describe_range(options, 0))
            result = await self._store.get_async(path, options=options)
            info.update(_describe_range(options, result.meta.get("size", 0)))
            return result

    def head(self, path: str) -> ObjectMeta:
        """Get file metadata (delegates to underlying store)."""
        with self._record(path, "head") as info:
            info["start"] = 0
            info["length"] = 0  # HEAD requests don't transfer data
            return self._store.head(path)

    async def head_async(self, path: str) -> ObjectMeta:
        """Get file metadata async (delegates to underlying store)."""
        with self._record(path, "head") as info:
            info["start"] = 0
            info["length"] = 0
            return await self._store.head_async(path)


__all__ = [
    "RequestRecord",
    "RequestTrace",
    "TracingStore",
]
