"""Attribute source backed by libcephfs.

Talks to the cluster directly through the ``cephfs`` Python binding
shipped with Ceph (``python3-cephfs``), so no kernel mount is needed.
The binding is imported when the source is opened; it is not available
from PyPI.
"""

import logging
from collections.abc import Iterator
from typing import Any

from cephfs_exporter.sources.base import (
    AttributeNotFoundError,
    AttributeSource,
    AttributeSourceError,
    DirEntry,
    EntryType,
    SourceUnavailableError,
)

logger = logging.getLogger(__name__)

# d_type values from <dirent.h>
_DT_DIR = 4
_DT_REG = 8

_LISTXATTR_BUFFER = 65536
_GETXATTR_BUFFER = 255


class CephFSSource(AttributeSource):
    """Reads attributes through a libcephfs mount.

    Args:
        conffile: Path to ceph.conf.
        auth_id: Ceph client id (without the "client." prefix).
        filesystem_name: Optional filesystem to mount when the cluster
            has several.
    """

    def __init__(
        self,
        *,
        conffile: str = "/etc/ceph/ceph.conf",
        auth_id: str = "admin",
        filesystem_name: str | None = None,
    ) -> None:
        self._conffile = conffile
        self._auth_id = auth_id
        self._filesystem_name = filesystem_name
        self._fs: Any = None
        self._errors: Any = None

    @property
    def name(self) -> str:
        return f"cephfs:client.{self._auth_id}"

    def open(self) -> None:
        """Connect to the cluster and mount the filesystem.

        Raises:
            SourceUnavailableError: If the binding is missing or the
                mount fails.
        """
        try:
            import cephfs  # type: ignore[import-not-found]
        except ImportError as e:
            msg = "The 'cephfs' Python binding is not installed (package python3-cephfs)"
            raise SourceUnavailableError(msg) from e

        try:
            fs = cephfs.LibCephFS(conffile=self._conffile, auth_id=self._auth_id)
            fs.mount(filesystem_name=self._filesystem_name)
        except cephfs.Error as e:
            msg = f"Unable to mount CephFS as client.{self._auth_id}: {e}"
            raise SourceUnavailableError(msg) from e

        self._fs = fs
        self._errors = cephfs
        logger.info("Mounted CephFS as client.%s", self._auth_id)

    def close(self) -> None:
        if self._fs is None:
            return
        try:
            self._fs.unmount()
            self._fs.shutdown()
        except self._errors.Error as e:
            logger.warning("Error while unmounting CephFS: %s", e)
        finally:
            self._fs = None
        logger.info("Unmounted CephFS")

    def get_attribute(self, path: str, attribute: str) -> bytes:
        fs = self._require_mount()
        try:
            return bytes(fs.getxattr(path, attribute, _GETXATTR_BUFFER))
        except (self._errors.ObjectNotFound, self._errors.NoData) as e:
            raise AttributeNotFoundError(f"Not found: {path} [{attribute}]") from e
        except self._errors.Error as e:
            raise AttributeSourceError(f"Failed to read {path} [{attribute}]: {e}") from e

    def list_attributes(self, path: str) -> set[str]:
        fs = self._require_mount()
        try:
            _, raw = fs.listxattr(path, _LISTXATTR_BUFFER)
        except self._errors.ObjectNotFound as e:
            raise AttributeNotFoundError(f"Not found: {path}") from e
        except self._errors.Error as e:
            raise AttributeSourceError(f"Failed to list attributes of {path}: {e}") from e
        return {name.decode() for name in bytes(raw).split(b"\x00") if name}

    def list_children(self, path: str) -> Iterator[DirEntry]:
        fs = self._require_mount()
        try:
            handle = fs.opendir(path)
        except self._errors.ObjectNotFound as e:
            raise AttributeNotFoundError(f"Not found: {path}") from e
        except self._errors.Error as e:
            raise AttributeSourceError(f"Unable to open directory {path}: {e}") from e

        try:
            while True:
                try:
                    entry = fs.readdir(handle)
                except self._errors.Error as e:
                    raise AttributeSourceError(f"Unable to read directory {path}: {e}") from e
                if entry is None:
                    break
                yield DirEntry(name=_decode(entry.d_name), entry_type=_entry_type(entry.d_type))
        finally:
            fs.closedir(handle)

    def _require_mount(self) -> Any:
        if self._fs is None:
            msg = "CephFS source is not mounted"
            raise SourceUnavailableError(msg)
        return self._fs


def _decode(name: bytes | str) -> str:
    return name.decode(errors="surrogateescape") if isinstance(name, bytes) else name


def _entry_type(d_type: int) -> EntryType:
    if d_type == _DT_DIR:
        return EntryType.DIRECTORY
    if d_type == _DT_REG:
        return EntryType.FILE
    return EntryType.OTHER
