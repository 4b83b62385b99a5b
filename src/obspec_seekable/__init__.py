from ._version import __version__
from .errors import BrokenReaderError, IncompleteRangeError, SeekableReaderError
from .readers import SeekableStoreReader
from .registry import ObjectStoreRegistry, open_url, open_url_async
from .typing import ObjectRef

__all__ = [
    "__version__",
    "BrokenReaderError",
    "IncompleteRangeError",
    "ObjectRef",
    "ObjectStoreRegistry",
    "SeekableReaderError",
    "SeekableStoreReader",
    "open_url",
    "open_url_async",
]
