"""cephfs-exporter - CephFS directory statistics for Prometheus.

Walks configured CephFS directory trees, reads the recursive aggregate
extended attributes maintained by the MDS (``ceph.dir.rbytes`` and
friends) and exposes them as labeled gauges.
"""

__version__ = "0.1.0"
