"""Data models for cephfs-exporter.

This module exports the root set and walk data structures.
"""

from cephfs_exporter.models.roots import RootEntry, RootsConfigError, load_roots, parse_roots
from cephfs_exporter.models.samples import (
    AttributeSample,
    MetricSample,
    WalkStats,
    WorkItem,
    parse_attribute_value,
)

__all__ = [
    "AttributeSample",
    "MetricSample",
    "RootEntry",
    "RootsConfigError",
    "WalkStats",
    "WorkItem",
    "load_roots",
    "parse_attribute_value",
    "parse_roots",
]
