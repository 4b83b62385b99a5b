from obstore.store import MemoryStore

from obspec_seekable import SeekableStoreReader
from obspec_seekable.protocols import AsyncRangeSource, RangeSource, SeekableFile

from .mocks import RangeStore


def test_obstore_satisfies_range_source_protocols():
    memstore = MemoryStore()
    assert isinstance(memstore, RangeSource)
    assert isinstance(memstore, AsyncRangeSource)


def test_custom_store_satisfies_range_source():
    assert isinstance(RangeStore(), RangeSource)


def test_object_without_get_is_not_a_range_source():
    assert not isinstance(object(), RangeSource)


def test_reader_satisfies_seekable_file(range_store):
    reader = SeekableStoreReader.open(range_store, "s3://reports", "report.csv")
    assert isinstance(reader, SeekableFile)
