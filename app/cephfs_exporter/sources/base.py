"""Abstract base class for directory attribute sources.

This module defines the AttributeSource interface the tree walker reads
extended attributes and directory listings through, together with the
errors a source may raise for a single call.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum


class EntryType(str, Enum):
    """Type of a directory entry returned by a listing.

    Attributes:
        DIRECTORY: Sub-directory, eligible for expansion.
        FILE: Regular file.
        OTHER: Symlink, socket, device or anything else.
    """

    DIRECTORY = "directory"
    FILE = "file"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class DirEntry:
    """A single entry of a directory listing.

    Attributes:
        name: Entry name relative to the listed directory.
        entry_type: Type of the entry.
    """

    name: str
    entry_type: EntryType

    @property
    def is_dir(self) -> bool:
        """Check if the entry is a directory."""
        return self.entry_type == EntryType.DIRECTORY


class AttributeSourceError(Exception):
    """Base exception for a failed attribute read or directory listing."""


class AttributeNotFoundError(AttributeSourceError):
    """Raised when an attribute is absent or the path no longer exists."""


class SourceUnavailableError(AttributeSourceError):
    """Raised when the source cannot be opened at all."""


class AttributeSource(ABC):
    """Abstract base class for all attribute sources.

    Every call may be slow and may fail on its own; callers treat a
    failure as affecting only the path it was made for.

    Example:
        >>> with LocalMountSource(Path("/mnt/cephfs")) as source:
        ...     raw = source.get_attribute("/data", "ceph.dir.rbytes")
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return a short identifier of this source for diagnostics."""

    @abstractmethod
    def get_attribute(self, path: str, attribute: str) -> bytes:
        """Read the raw value of an extended attribute.

        Args:
            path: Directory path inside the filesystem.
            attribute: Attribute name (e.g., "ceph.dir.rbytes").

        Returns:
            Raw attribute value.

        Raises:
            AttributeNotFoundError: If the attribute or path does not exist.
            AttributeSourceError: On any other read failure.
        """

    @abstractmethod
    def list_attributes(self, path: str) -> set[str]:
        """List attribute names present on a path.

        Raises:
            AttributeSourceError: If the listing fails.
        """

    @abstractmethod
    def list_children(self, path: str) -> Iterator[DirEntry]:
        """Yield the entries of a directory.

        Implementations may yield ``.`` and ``..``; the walker skips them.

        Raises:
            AttributeSourceError: If the directory cannot be opened or read.
        """

    def open(self) -> None:  # noqa: B027
        """Prepare the source for use. No-op by default."""

    def close(self) -> None:  # noqa: B027
        """Release resources held by the source. No-op by default."""

    def __enter__(self) -> "AttributeSource":
        self.open()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()
