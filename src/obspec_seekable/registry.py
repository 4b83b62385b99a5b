"""
URL-based store lookup and reader construction.

The registry follows https://docs.rs/object_store/0.12.2/src/object_store/registry.rs.html#176-218
"""

from __future__ import annotations

from collections import namedtuple
from collections.abc import Iterator
from typing import Generic, TypeVar
from urllib.parse import urlparse

from obspec import Get
from obstore.store import from_url

from obspec_seekable.readers import SeekableStoreReader
from obspec_seekable.typing import Path, Url

T = TypeVar("T", bound=Get)
"""Type variable for store types, bounded by [Get][obspec.Get]."""

UrlKey = namedtuple("UrlKey", ["scheme", "netloc"])
"""
A named tuple containing a URL's scheme and authority/netloc.

Used as the primary key in ObjectStoreRegistry.map.
"""


def get_url_key(url: Url) -> UrlKey:
    """
    Split a URL into the (scheme, netloc) key used by
    [ObjectStoreRegistry.map][obspec_seekable.registry.ObjectStoreRegistry.map].

    Raises
    ------
    ValueError
        If the URL has no scheme.
    """
    parsed = urlparse(url)
    if not parsed.scheme:
        raise ValueError(
            f"Urls are expected to contain a scheme (e.g., `file://` or `s3://`), received {url}"
        )
    return UrlKey(parsed.scheme, parsed.netloc)


def container_of(url: Url) -> str:
    """Return the `scheme://netloc` part of a URL."""
    key = get_url_key(url)
    return f"{key.scheme}://{key.netloc}"


def path_segments(path: str) -> Iterator[str]:
    """Return the non-empty segments of a path."""
    return filter(None, path.split("/"))


class PathEntry(Generic[T]):
    """
    One node of the tree of registered path prefixes.

    `/` => store1 and `/foo/bar` => store2 are stored as a root entry holding
    store1 with a child `foo`, which has no store, holding a child `bar` with
    store2.
    """

    def __init__(self) -> None:
        self.store: T | None = None
        self.children: dict[str, PathEntry[T]] = {}

    def iter_stores(self) -> Iterator[T]:
        if self.store is not None:
            yield self.store
        for child in self.children.values():
            yield from child.iter_stores()

    def lookup(self, to_resolve: str) -> T | None:
        """Return the store registered under the longest matching prefix."""
        current = self
        found = self.store
        for segment in path_segments(to_resolve):
            if segment not in current.children:
                break
            current = current.children[segment]
            if current.store is not None:
                found = current.store
        return found


class ObjectStoreRegistry(Generic[T]):
    """
    A registry that maps URLs to object stores.

    URLs are matched on scheme and netloc, then on the longest registered path
    prefix, segment by segment.

    The registry can be used as an async context manager to enter and exit the
    stores that support it. Stores that don't (like obstore's
    [S3Store][obstore.store.S3Store]) are unaffected.

    Examples
    --------
    ```python
    from obstore.store import S3Store
    from obspec_seekable import ObjectStoreRegistry, open_url

    registry = ObjectStoreRegistry({"s3://my-bucket": S3Store(bucket="my-bucket")})
    with open_url("s3://my-bucket/data/report.csv", registry=registry) as reader:
        reader.seek(100)
        row = reader.read(80)
    ```
    """

    def __init__(self, stores: dict[Url, T] | None = None) -> None:
        """
        Create a new store registry.

        Parameters
        ----------
        stores
            Mapping of URLs to stores to register.
        """
        self.map: dict[UrlKey, PathEntry[T]] = {}
        for url, store in (stores or {}).items():
            self.register(url, store)

    def register(self, url: Url, store: T) -> None:
        """
        Register a store for the provided URL, replacing any previous one.

        Parameters
        ----------
        url
            URL to register the store under.
        store
            Any object implementing at least [Get][obspec.Get].
        """
        key = get_url_key(url)
        entry = self.map.setdefault(key, PathEntry())
        for segment in path_segments(urlparse(url).path):
            entry = entry.children.setdefault(segment, PathEntry())
        entry.store = store

    def resolve(self, url: Url) -> tuple[T, Path]:
        """
        Find the store for a URL.

        Returns
        -------
        T
            The store registered under the longest matching prefix.
        Path
            The rest of the URL's path, relative to the store. A `prefix` (as
            on obstore's S3Store) or `url` attribute of the store is stripped.

        Raises
        ------
        ValueError
            If no registered URL matches.
        """
        parsed = urlparse(url)
        path = parsed.path
        entry = self.map.get(UrlKey(parsed.scheme, parsed.netloc))
        store = entry.lookup(path) if entry is not None else None
        if store is None:
            raise ValueError(f"Could not find an ObjectStore matching the url `{url}`")

        if getattr(store, "prefix", None):
            prefix = str(store.prefix).lstrip("/")
        elif hasattr(store, "url"):
            prefix = urlparse(store.url).path.lstrip("/")
        else:
            prefix = ""
        return store, path.lstrip("/").removeprefix(prefix).lstrip("/")

    def _iter_stores(self) -> Iterator[T]:
        for entry in self.map.values():
            yield from entry.iter_stores()

    async def __aenter__(self) -> "ObjectStoreRegistry[T]":
        """Enter every registered store that is an async context manager."""
        for store in self._iter_stores():
            if hasattr(store, "__aenter__"):
                await store.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit every registered store that is an async context manager."""
        for store in self._iter_stores():
            if hasattr(store, "__aexit__"):
                await store.__aexit__(exc_type, exc_val, exc_tb)


def _store_for(url: Url, registry: ObjectStoreRegistry | None):
    """Return `(store, key, leave_open)` for a URL."""
    if registry is not None:
        store, key = registry.resolve(url)
        return store, key, True

    return from_url(container_of(url)), urlparse(url).path.lstrip("/"), False


def open_url(
    url: Url, *, registry: ObjectStoreRegistry | None = None
) -> SeekableStoreReader:
    """
    Open a [SeekableStoreReader][obspec_seekable.readers.SeekableStoreReader] for a URL.

    Parameters
    ----------
    url
        URL of the object, e.g. `s3://bucket/path/file.csv`.
    registry
        Registry used to find the store. Registered stores are borrowed and
        stay open after the reader is closed. Without a registry, a store is
        created with obstore's `from_url()` from the URL's scheme and netloc
        and is owned by the reader.
    """
    store, key, leave_open = _store_for(url, registry)
    return SeekableStoreReader.open(
        store, container_of(url), key, leave_open=leave_open
    )


async def open_url_async(
    url: Url, *, registry: ObjectStoreRegistry | None = None
) -> SeekableStoreReader:
    """Async counterpart of [`open_url()`][obspec_seekable.registry.open_url]."""
    store, key, leave_open = _store_for(url, registry)
    return await SeekableStoreReader.open_async(
        store, container_of(url), key, leave_open=leave_open
    )


__all__ = ["ObjectStoreRegistry", "open_url", "open_url_async"]
