import pytest
from obstore.store import MemoryStore

from .mocks import RangeStore

REPORT = b"".join(b"row-%04d,%s\n" % (i, b"x" * 5) for i in range(1000))[:1000]


@pytest.fixture
def report_bytes() -> bytes:
    """1000 bytes of CSV-like rows."""
    assert len(REPORT) == 1000
    return REPORT


@pytest.fixture
def range_store(report_bytes) -> RangeStore:
    return RangeStore({"report.csv": report_bytes})


@pytest.fixture
def memstore(report_bytes) -> MemoryStore:
    store = MemoryStore()
    store.put("report.csv", report_bytes)
    return store
