"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules, most notably
an in-memory attribute source standing in for a mounted CephFS.
"""

import posixpath
from collections.abc import Iterator

import pytest
from cephfs_exporter.models.roots import RootEntry
from cephfs_exporter.sources.base import (
    AttributeNotFoundError,
    AttributeSource,
    AttributeSourceError,
    DirEntry,
    EntryType,
)


class FakeAttributeSource(AttributeSource):
    """In-memory directory tree with CephFS-style attributes.

    Every call is recorded in ``calls`` as ``(operation, path, attribute)``.
    """

    def __init__(self) -> None:
        self.attributes: dict[str, dict[str, bytes]] = {}
        self.children: dict[str, list[DirEntry]] = {}
        self.calls: list[tuple[str, str, str | None]] = []
        self.failing_listings: set[str] = set()
        self.failing_reads: set[tuple[str, str]] = set()

    @property
    def name(self) -> str:
        return "fake"

    def add_dir(
        self,
        path: str,
        size: int | None = None,
        *,
        entries: int = 1,
        files: int = 1,
        extra: dict[str, bytes] | None = None,
    ) -> None:
        """Add a directory, registering it with its parent.

        Args:
            path: Absolute directory path.
            size: Value of ceph.dir.rbytes (omitted if None).
            entries: Value of ceph.dir.rentries.
            files: Value of ceph.dir.rfiles.
            extra: Additional raw attributes.
        """
        attrs: dict[str, bytes] = {
            "ceph.dir.rentries": str(entries).encode(),
            "ceph.dir.rfiles": str(files).encode(),
        }
        if size is not None:
            attrs["ceph.dir.rbytes"] = str(size).encode()
        attrs.update(extra or {})
        self.attributes[path] = attrs
        self.children.setdefault(path, [])
        self._link(path, EntryType.DIRECTORY)

    def add_file(self, path: str) -> None:
        """Add a regular file to its parent directory."""
        self._link(path, EntryType.FILE)

    def _link(self, path: str, entry_type: EntryType) -> None:
        parent, name = posixpath.split(path)
        if parent in self.children and parent != path:
            self.children[parent].append(DirEntry(name=name, entry_type=entry_type))

    def get_attribute(self, path: str, attribute: str) -> bytes:
        self.calls.append(("get", path, attribute))
        if (path, attribute) in self.failing_reads:
            raise AttributeSourceError(f"I/O error: {path}")
        attrs = self.attributes.get(path)
        if attrs is None or attribute not in attrs:
            raise AttributeNotFoundError(f"Not found: {path} [{attribute}]")
        return attrs[attribute]

    def list_attributes(self, path: str) -> set[str]:
        self.calls.append(("listxattr", path, None))
        if path not in self.attributes:
            raise AttributeNotFoundError(f"Not found: {path}")
        return set(self.attributes[path])

    def list_children(self, path: str) -> Iterator[DirEntry]:
        self.calls.append(("list", path, None))
        if path in self.failing_listings or path not in self.children:
            raise AttributeSourceError(f"Unable to open directory {path}")
        yield DirEntry(".", EntryType.DIRECTORY)
        yield DirEntry("..", EntryType.DIRECTORY)
        yield from self.children[path]

    def calls_under(self, path: str) -> list[tuple[str, str, str | None]]:
        """Return recorded calls for a path or anything below it."""
        return [c for c in self.calls if c[1] == path or c[1].startswith(path + "/")]


@pytest.fixture
def fake_source() -> FakeAttributeSource:
    """Empty in-memory attribute source."""
    return FakeAttributeSource()


@pytest.fixture
def alice_root() -> RootEntry:
    """Root entry for the acme/alice scenario."""
    return RootEntry(organisation="acme", user="alice", path="/data/alice")


@pytest.fixture
def alice_tree(fake_source: FakeAttributeSource) -> FakeAttributeSource:
    """Tree for the acme/alice scenario (threshold 100, max depth 2).

    /data/alice          500
    /data/alice/big      200
    /data/alice/big/x    300
    /data/alice/big/x/y  300   (below max depth, never reached)
    /data/alice/small     10
    /data/alice/small/z  900   (below a pruned directory, never reached)
    """
    fake_source.add_dir("/data/alice", 500, entries=40, files=30)
    fake_source.add_dir("/data/alice/big", 200, entries=20, files=15)
    fake_source.add_dir("/data/alice/big/x", 300, entries=5, files=4)
    fake_source.add_dir("/data/alice/big/x/y", 300)
    fake_source.add_dir("/data/alice/small", 10, entries=3, files=2)
    fake_source.add_dir("/data/alice/small/z", 900)
    fake_source.add_file("/data/alice/readme.txt")
    return fake_source
