"""Tests for RangeHandle."""

import asyncio
import io

import pytest
from obstore.store import MemoryStore

from obspec_seekable.errors import IncompleteRangeError
from obspec_seekable.readers import RangeHandle

from .mocks import (
    ExplodingCloseResult,
    FailingBodyResult,
    MockGetResult,
    MockGetResultAsync,
    RecordingAsyncResult,
    SizelessResult,
    StallingResult,
)


def test_read_across_chunk_boundaries():
    handle = RangeHandle(MockGetResult(b"0123456789", chunk_size=3))

    assert handle.read(2) == b"01"
    assert handle.read(4) == b"2345"
    assert handle.read(10) == b"6789"
    assert handle.read(1) == b""


def test_read_pulls_chunks_lazily():
    result = MockGetResult(b"0123456789", chunk_size=3)
    handle = RangeHandle(result)

    handle.read(1)
    assert result.chunks_served == 1
    handle.read(2)
    assert result.chunks_served == 1
    handle.read(1)
    assert result.chunks_served == 2


def test_read_minus_one_and_none_drain_everything():
    handle = RangeHandle(MockGetResult(b"abcdef", chunk_size=2))
    assert handle.read(1) == b"a"
    assert handle.read(-1) == b"bcdef"

    handle = RangeHandle(MockGetResult(b"abcdef", chunk_size=4))
    assert handle.read(None) == b"abcdef"


def test_read_zero_does_not_touch_stream():
    result = MockGetResult(b"abc")
    handle = RangeHandle(result)
    assert handle.read(0) == b""
    assert result.chunks_served == 0


def test_offset_tracks_start_plus_consumed():
    handle = RangeHandle(MockGetResult(b"56789", start=5), start=5)
    assert handle.offset == 5
    handle.read(3)
    assert handle.offset == 8
    handle.read(100)
    assert handle.offset == 10


def test_empty_handle():
    handle = RangeHandle.empty(42)
    assert handle.start == 42
    assert handle.read(10) == b""
    assert handle.read() == b""


def test_obstore_result():
    store = MemoryStore()
    store.put("data.bin", b"0123456789ABCDEF")
    result = store.get("data.bin", options={"range": (4, 16)})

    handle = RangeHandle(result, start=4)
    assert handle.read(4) == b"4567"
    assert handle.read() == b"89ABCDEF"


def test_close_is_idempotent_and_blocks_reads():
    handle = RangeHandle(MockGetResult(b"abc"))
    handle.read(1)
    handle.close()
    handle.close()

    assert handle.closed
    with pytest.raises(ValueError, match="closed"):
        handle.read(1)


def test_close_propagates_stream_close_errors():
    handle = RangeHandle(ExplodingCloseResult(b"abc"))
    handle.read(1)
    with pytest.raises(RuntimeError, match="stream close failed"):
        handle.close()
    assert handle.closed


def test_sync_read_of_async_only_result():
    handle = RangeHandle(MockGetResultAsync(b"abc"))
    with pytest.raises(io.UnsupportedOperation):
        handle.read(1)


def test_flush_without_flushable_result():
    handle = RangeHandle(MockGetResult(b"abc"))
    handle.flush()
    assert handle.read() == b"abc"


@pytest.mark.asyncio
async def test_read_async():
    handle = RangeHandle(MockGetResultAsync(b"0123456789"))
    assert await handle.read_async(4) == b"0123"
    assert await handle.read_async() == b"456789"
    assert await handle.read_async(1) == b""


@pytest.mark.asyncio
async def test_read_async_after_sync_read_keeps_sync_stream():
    handle = RangeHandle(MockGetResult(b"0123456789", chunk_size=2))
    assert handle.read(3) == b"012"
    assert await handle.read_async(3) == b"345"
    assert handle.read() == b"6789"


@pytest.mark.asyncio
async def test_sync_read_after_async_read_is_unsupported():
    handle = RangeHandle(MockGetResult(b"0123456789", chunk_size=2))
    assert await handle.read_async(3) == b"012"
    with pytest.raises(io.UnsupportedOperation):
        handle.read(5)


@pytest.mark.asyncio
async def test_aclose():
    handle = RangeHandle(MockGetResultAsync(b"abc"))
    assert await handle.read_async(1) == b"a"
    await handle.aclose()
    await handle.aclose()
    assert handle.closed
    with pytest.raises(ValueError, match="closed"):
        await handle.read_async(1)


# --- Responses that stop short ---


def test_read_exactly_to_end():
    handle = RangeHandle(MockGetResult(b"56789", start=5), start=5, end=10)
    assert handle.read() == b"56789"
    assert handle.read(1) == b""


def test_stream_ending_before_end_raises():
    handle = RangeHandle(MockGetResult(b"0123"), start=0, end=10)
    with pytest.raises(IncompleteRangeError, match="ended at byte 4"):
        handle.read()


def test_failed_stream_is_not_reported_as_end():
    handle = RangeHandle(FailingBodyResult(b"0123456789", fail_after=4), end=10)

    assert handle.read(4) == b"0123"
    with pytest.raises(ConnectionError):
        handle.read(1)
    with pytest.raises(IncompleteRangeError):
        handle.read(1)
    assert handle.offset == 4


@pytest.mark.asyncio
async def test_cancelled_async_stream_is_not_reported_as_end():
    handle = RangeHandle(StallingResult(b"0123456789", stall_after=3), end=10)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(handle.read_async(5), 0.05)
    with pytest.raises(IncompleteRangeError):
        await handle.read_async(5)


# --- Releasing ---


def test_close_releases_result():
    result = SizelessResult(b"abc")
    handle = RangeHandle(result)

    handle.close()
    handle.close()
    assert result.close_calls == 1


@pytest.mark.asyncio
async def test_aclose_closes_async_chunk_stream():
    result = RecordingAsyncResult(b"abc")
    handle = RangeHandle(result)
    assert await handle.read_async(1) == b"a"

    await handle.aclose()
    assert result.chunks.aclose_calls == 1


@pytest.mark.asyncio
async def test_close_drops_async_chunk_stream():
    result = RecordingAsyncResult(b"abc")
    handle = RangeHandle(result)
    assert await handle.read_async(1) == b"a"

    handle.close()
    assert handle.closed
    assert result.chunks.aclose_calls == 0
