"""Attribute source backed by a locally mounted CephFS.

Reads virtual extended attributes through the kernel (or ceph-fuse)
client using ``os.getxattr``. Paths handed to this source are CephFS
paths (as in ``paths.json``) and are resolved below a mount root.
"""

import errno
import logging
import os
from collections.abc import Iterator
from pathlib import Path

from cephfs_exporter.sources.base import (
    AttributeNotFoundError,
    AttributeSource,
    AttributeSourceError,
    DirEntry,
    EntryType,
    SourceUnavailableError,
)

logger = logging.getLogger(__name__)

_MISSING_ERRNOS = frozenset({errno.ENOENT, errno.ENODATA, errno.ENOTDIR})


class LocalMountSource(AttributeSource):
    """Reads attributes from a CephFS mount point.

    Args:
        mount_root: Local directory where the filesystem root is mounted.
    """

    def __init__(self, mount_root: Path) -> None:
        self._mount_root = mount_root

    @property
    def name(self) -> str:
        return f"local:{self._mount_root}"

    def open(self) -> None:
        """Check that the mount root is an accessible directory.

        Raises:
            SourceUnavailableError: If the mount root is not a directory.
        """
        if not self._mount_root.is_dir():
            msg = f"Mount root is not a directory: {self._mount_root}"
            raise SourceUnavailableError(msg)
        logger.debug("Using local mount at %s", self._mount_root)

    def get_attribute(self, path: str, attribute: str) -> bytes:
        local = self._resolve(path)
        try:
            return os.getxattr(local, attribute)
        except OSError as e:
            raise _translate(e, path, attribute) from e

    def list_attributes(self, path: str) -> set[str]:
        local = self._resolve(path)
        try:
            return set(os.listxattr(local))
        except OSError as e:
            raise _translate(e, path) from e

    def list_children(self, path: str) -> Iterator[DirEntry]:
        local = self._resolve(path)
        try:
            with os.scandir(local) as it:
                for entry in it:
                    yield DirEntry(name=entry.name, entry_type=_entry_type(entry))
        except OSError as e:
            raise _translate(e, path) from e

    def _resolve(self, path: str) -> Path:
        """Map a filesystem path onto the local mount."""
        return self._mount_root / path.lstrip("/")


def _entry_type(entry: os.DirEntry[str]) -> EntryType:
    """Classify a scandir entry without following symlinks."""
    try:
        if entry.is_dir(follow_symlinks=False):
            return EntryType.DIRECTORY
        if entry.is_file(follow_symlinks=False):
            return EntryType.FILE
    except OSError:
        logger.debug("Cannot determine type of: %s", entry.path)
    return EntryType.OTHER


def _translate(error: OSError, path: str, attribute: str | None = None) -> AttributeSourceError:
    """Convert an OSError into the source error hierarchy."""
    target = f"{path} [{attribute}]" if attribute else path
    if error.errno in _MISSING_ERRNOS:
        return AttributeNotFoundError(f"Not found: {target}")
    return AttributeSourceError(f"Failed to read {target}: {error}")
