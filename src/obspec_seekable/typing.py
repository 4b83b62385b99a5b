from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

Url: TypeAlias = str
"""A URL string (e.g., 's3://bucket/path' or 'https://example.com/file')."""

Path: TypeAlias = str
"""A path string within an object store."""


@dataclass(frozen=True)
class ObjectRef:
    """
    Immutable reference to a single object in a store.

    Attributes
    ----------
    container
        Identifier of the bucket or base URL the store is bound to
        (e.g., ``"s3://my-bucket"``). Only used to describe the object.
    key
        Path of the object within the store. This is what is passed to
        [`get()`][obspec.Get].
    """

    container: str
    key: Path

    @property
    def url(self) -> Url:
        """The container and key joined into a single URL-like string."""
        if not self.container:
            return self.key
        return f"{self.container.rstrip('/')}/{self.key.lstrip('/')}"

    def __str__(self) -> str:
        return self.url


__all__ = ["Url", "Path", "ObjectRef"]
