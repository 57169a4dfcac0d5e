"""Walk data models.

This module defines the immutable values passed between the tree walker,
its frontier and the metric registry.
"""

import math
import posixpath
from dataclasses import dataclass, field

from cephfs_exporter.models.roots import RootEntry


@dataclass(frozen=True, slots=True)
class WorkItem:
    """A directory waiting to be visited.

    Labels are inherited from the originating root and carried down the
    tree unchanged.

    Attributes:
        organisation: Organisation label of the originating root.
        user: User label of the originating root.
        path: Directory path inside the filesystem.
        depth: Distance from the root (0 for the root itself).
    """

    organisation: str
    user: str
    path: str
    depth: int = 0

    @classmethod
    def from_root(cls, root: RootEntry) -> "WorkItem":
        """Create the depth-0 item for a configured root."""
        return cls(organisation=root.organisation, user=root.user, path=root.path)

    @property
    def is_root(self) -> bool:
        """Check if this item is a configured root."""
        return self.depth == 0

    def child(self, name: str) -> "WorkItem":
        """Create the item for a child directory one level deeper."""
        return WorkItem(
            organisation=self.organisation,
            user=self.user,
            path=posixpath.join(self.path, name),
            depth=self.depth + 1,
        )

    def labels(self) -> dict[str, str]:
        """Return the label set attached to samples of this directory."""
        return {"org": self.organisation, "user": self.user, "path": self.path}


@dataclass(frozen=True, slots=True)
class AttributeSample:
    """A raw attribute read and its numeric interpretation.

    Attributes:
        path: Directory the attribute was read from.
        attribute: Attribute name.
        raw_value: Bytes returned by the source.
        value: Parsed value, or None if parsing failed.
    """

    path: str
    attribute: str
    raw_value: bytes
    value: float | None

    @classmethod
    def parse(cls, path: str, attribute: str, raw_value: bytes) -> "AttributeSample":
        """Build a sample, parsing the raw value."""
        return cls(path, attribute, raw_value, parse_attribute_value(raw_value))

    @property
    def parsed(self) -> bool:
        """Check if the raw value was a valid number."""
        return self.value is not None


@dataclass(frozen=True, slots=True)
class MetricSample:
    """A single value for one labeled time series.

    Attributes:
        metric_name: Exposed metric name.
        labels: Label set with ``org``, ``user`` and ``path`` keys.
        value: Sample value.
        help_text: HELP string used when the gauge is first created.
    """

    metric_name: str
    labels: dict[str, str] = field(hash=False)
    value: float
    help_text: str = ""

    @property
    def series_key(self) -> tuple[str, str, str, str]:
        """Identify the series this sample belongs to."""
        return (self.metric_name, self.labels["org"], self.labels["user"], self.labels["path"])


@dataclass(slots=True)
class WalkStats:
    """Counters describing one walk.

    Attributes:
        visited: Directories whose size attribute was read.
        pruned: Non-root directories skipped below the size threshold.
        depth_capped: Directories sampled but not expanded because of depth.
        samples: Metric samples produced.
        read_errors: Failed attribute reads and directory listings.
        parse_errors: Attribute values that were not numbers.
        aborted_roots: Roots whose walk stopped on frontier overflow.
    """

    visited: int = 0
    pruned: int = 0
    depth_capped: int = 0
    samples: int = 0
    read_errors: int = 0
    parse_errors: int = 0
    aborted_roots: list[RootEntry] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """Check if every root was walked without aborting."""
        return not self.aborted_roots


def parse_attribute_value(raw: bytes) -> float | None:
    """Parse an attribute value as a float.

    CephFS returns decimal ASCII, sometimes NUL terminated. Empty values
    and text that is not a finite decimal number yield None.

    Args:
        raw: Raw attribute bytes.

    Returns:
        Parsed value, or None if the value is not a finite number.
    """
    try:
        text = raw.decode("ascii").rstrip("\x00").strip()
    except UnicodeDecodeError:
        return None
    if not text or "_" in text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value
