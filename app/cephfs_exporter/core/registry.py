"""Process-wide metric registry.

Maps each derived metric name onto a single labeled Prometheus gauge.
Gauges are created lazily the first time a name is seen and reused for
the rest of the process lifetime; registering a name twice with the
underlying ``CollectorRegistry`` would be a fatal error.
"""

import logging
import threading
from collections.abc import Iterable, Iterator

from prometheus_client import CollectorRegistry, Gauge, generate_latest
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from cephfs_exporter.models.samples import MetricSample

logger = logging.getLogger(__name__)

LABEL_NAMES: tuple[str, ...] = ("org", "user", "path")

_DEFAULT_HELP = "A dynamically generated metric"

SeriesKey = tuple[str, str, str, str]
RootKey = tuple[str, str, str]


class RegistryConflictError(Exception):
    """Raised when a metric name collides with an existing collector."""


class _SnapshotRegistry(CollectorRegistry):
    """Collector registry whose collection runs under the snapshot lock.

    Every reader (``generate_latest``, ``make_wsgi_app``,
    ``get_sample_value``) collects through :meth:`collect`, so it sees
    either none or all of a snapshot applied under the same lock.
    """

    def __init__(self, lock: threading.RLock) -> None:
        super().__init__()
        self._snapshot_lock = lock

    def collect(self) -> Iterator[Metric]:
        with self._snapshot_lock:
            metrics = list(super().collect())
        yield from metrics

    def restricted_registry(self, names: Iterable[str]) -> "_LockedView":
        return _LockedView(super().restricted_registry(names), self._snapshot_lock)


class _LockedView:
    """Filtered registry view (``?name[]=...``) collected under the snapshot lock."""

    def __init__(self, registry: Collector, lock: threading.RLock) -> None:
        self._registry = registry
        self._snapshot_lock = lock

    def collect(self) -> Iterator[Metric]:
        with self._snapshot_lock:
            metrics = list(self._registry.collect())
        yield from metrics


class MetricRegistry:
    """Owns the gauges exposed by the exporter.

    The registry is created once at startup and handed to the collection
    trigger and the HTTP layer. All mutation goes through
    :meth:`get_or_create`, :meth:`record`, :meth:`apply` and
    :meth:`expire_stale`, serialized by one lock that collection of
    :attr:`collector_registry` also takes.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._registry = _SnapshotRegistry(self._lock)
        self._gauges: dict[str, Gauge] = {}
        self._series: set[SeriesKey] = set()

    @property
    def collector_registry(self) -> CollectorRegistry:
        return self._registry

    @property
    def metric_names(self) -> list[str]:
        """Return the names of all gauges created so far."""
        with self._lock:
            return sorted(self._gauges)

    @property
    def series(self) -> set[SeriesKey]:
        """Return the keys of all series currently exposed."""
        with self._lock:
            return set(self._series)

    def get_or_create(self, metric_name: str, help_text: str = _DEFAULT_HELP) -> Gauge:
        """Return the gauge for a metric name, creating it on first use.

        Args:
            metric_name: Exposed metric name.
            help_text: HELP string, only used when the gauge is created.

        Returns:
            The single Gauge registered under this name.

        Raises:
            RegistryConflictError: If the collector registry already holds
                a collector with this name that was not created here.
        """
        with self._lock:
            gauge = self._gauges.get(metric_name)
            if gauge is not None:
                return gauge

            try:
                gauge = Gauge(
                    metric_name,
                    help_text or _DEFAULT_HELP,
                    labelnames=LABEL_NAMES,
                    registry=self._registry,
                )
            except ValueError as e:
                msg = f"Cannot register metric '{metric_name}': {e}"
                raise RegistryConflictError(msg) from e

            self._gauges[metric_name] = gauge
            logger.debug("Registered gauge %s", metric_name)
            return gauge

    def record(self, sample: MetricSample) -> None:
        """Set the value of the series a sample belongs to."""
        with self._lock:
            gauge = self.get_or_create(sample.metric_name, sample.help_text)
            gauge.labels(**sample.labels).set(sample.value)
            self._series.add(sample.series_key)

    def apply(
        self,
        samples: Iterable[MetricSample],
        *,
        expire: bool = False,
        keep_roots: Iterable[RootKey] = (),
    ) -> set[SeriesKey]:
        """Record a complete snapshot atomically.

        Scrapes running concurrently see either none or all of the
        snapshot, including the removal of stale series when ``expire``
        is set.

        Args:
            samples: Samples of one finished walk.
            expire: Remove series the snapshot did not write.
            keep_roots: ``(org, user, path)`` of roots whose walk was
                aborted; their series are never expired.

        Returns:
            Keys of the series written by this snapshot.
        """
        seen: set[SeriesKey] = set()
        with self._lock:
            for sample in samples:
                self.record(sample)
                seen.add(sample.series_key)
            if expire:
                self.expire_stale(seen, keep_roots)
        return seen

    def expire_stale(self, seen: set[SeriesKey], keep_roots: Iterable[RootKey] = ()) -> int:
        """Remove series not written by the latest walk.

        Args:
            seen: Series written by the latest walk.
            keep_roots: ``(org, user, path)`` of roots whose walk was
                aborted; series of the same org and user at or below
                the path are kept.

        Returns:
            Number of removed series.
        """
        kept = tuple(keep_roots)
        removed = 0
        with self._lock:
            for key in sorted(self._series - seen):
                name, org, user, path = key
                if any(_belongs_to(org, user, path, root) for root in kept):
                    continue
                self._gauges[name].remove(org, user, path)
                self._series.discard(key)
                removed += 1
        if removed:
            logger.info("Expired %d stale series", removed)
        return removed

    def exposition(self) -> bytes:
        """Render all metrics in the Prometheus text format."""
        return generate_latest(self._registry)


def _belongs_to(org: str, user: str, path: str, root: RootKey) -> bool:
    root_org, root_user, root_path = root
    return org == root_org and user == root_user and _is_under(path, root_path)


def _is_under(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + "/")
