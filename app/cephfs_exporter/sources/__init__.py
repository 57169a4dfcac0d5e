"""Attribute sources for the tree walker.

This module exports the source contract and its implementations.
"""

from cephfs_exporter.sources.base import (
    AttributeNotFoundError,
    AttributeSource,
    AttributeSourceError,
    DirEntry,
    EntryType,
    SourceUnavailableError,
)
from cephfs_exporter.sources.cephfs import CephFSSource
from cephfs_exporter.sources.local import LocalMountSource

__all__ = [
    "AttributeNotFoundError",
    "AttributeSource",
    "AttributeSourceError",
    "CephFSSource",
    "DirEntry",
    "EntryType",
    "LocalMountSource",
    "SourceUnavailableError",
]
