"""Metric name derivation.

Attribute names map onto metric names deterministically, so the same
attribute found on any path, in any cycle, always resolves to the same
gauge.
"""

import re

METRIC_NAMESPACE = "cephfs_xattr"

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9]")


def metric_name(attribute: str) -> str:
    """Derive the exposed metric name for an attribute.

    Every character that is not an ASCII letter or digit becomes an
    underscore, and the exporter namespace is prepended.

    Example:
        >>> metric_name("ceph.dir.rbytes")
        'cephfs_xattr_ceph_dir_rbytes'

    Args:
        attribute: Extended attribute name.

    Returns:
        Prometheus metric name.
    """
    return f"{METRIC_NAMESPACE}_{_INVALID_CHARS.sub('_', attribute)}"


def help_text(attribute: str) -> str:
    """Return the HELP string for an attribute's gauge."""
    return f"CephFS directory attribute {attribute}"
