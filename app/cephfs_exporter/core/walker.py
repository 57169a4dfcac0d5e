"""Tree walker for CephFS directory statistics.

Visits each configured root depth-first, reads the recursive aggregate
attributes of every directory it reaches, and turns them into metric
samples. Subtrees smaller than the expansion threshold are pruned before
any further reads, and the walk never goes deeper than the configured
maximum depth.
"""

import logging
from collections.abc import Iterable, Iterator

from cephfs_exporter.core.config import DiscoverAttributes, WalkerSettings
from cephfs_exporter.core.frontier import Frontier, FrontierOverflowError
from cephfs_exporter.core.naming import help_text, metric_name
from cephfs_exporter.models.roots import RootEntry
from cephfs_exporter.models.samples import AttributeSample, MetricSample, WalkStats, WorkItem
from cephfs_exporter.sources.base import (
    AttributeNotFoundError,
    AttributeSource,
    AttributeSourceError,
)

logger = logging.getLogger(__name__)

_SKIPPED_NAMES = frozenset({".", ".."})


class TreeWalker:
    """Walks directory trees and yields metric samples.

    A walk is strictly sequential. The walker holds no per-walk state, so
    one instance may serve overlapping walks from several threads as long
    as the source allows concurrent calls.

    Args:
        source: Attribute source to read from.
        settings: Thresholds and attribute selection.

    Example:
        >>> walker = TreeWalker(source, WalkerSettings(min_size_to_expand=100))
        >>> for sample in walker.walk(roots):
        ...     print(sample.metric_name, sample.labels["path"], sample.value)
    """

    def __init__(self, source: AttributeSource, settings: WalkerSettings | None = None) -> None:
        self._source = source
        self._settings = settings or WalkerSettings()

    @property
    def settings(self) -> WalkerSettings:
        return self._settings

    def walk(
        self,
        roots: Iterable[RootEntry],
        stats: WalkStats | None = None,
    ) -> Iterator[MetricSample]:
        """Walk every root and yield samples as they are produced.

        Each root gets its own frontier. A frontier overflow stops the
        remaining work of that root only; samples already yielded stay
        valid and the next root is walked normally.

        Args:
            roots: Roots to walk, in order.
            stats: Optional counters object filled in during the walk.

        Yields:
            MetricSample for every attribute read from a sampled directory.
        """
        if stats is None:
            stats = WalkStats()

        for root in roots:
            yield from self._walk_root(root, stats)

        logger.info(
            "Walk finished: %d directories visited, %d samples, %d pruned, "
            "%d read errors, %d parse errors, %d roots aborted",
            stats.visited,
            stats.samples,
            stats.pruned,
            stats.read_errors,
            stats.parse_errors,
            len(stats.aborted_roots),
        )

    def _walk_root(self, root: RootEntry, stats: WalkStats) -> Iterator[MetricSample]:
        frontier = Frontier(self._settings.max_frontier)
        frontier.push(WorkItem.from_root(root))

        while frontier:
            item = frontier.pop()
            try:
                yield from self._visit(item, frontier, stats)
            except FrontierOverflowError as e:
                logger.error("Aborting walk of %s: %s", root.path, e)
                stats.aborted_roots.append(root)
                return

    def _visit(self, item: WorkItem, frontier: Frontier, stats: WalkStats) -> Iterator[MetricSample]:
        """Sample one directory and push its eligible children."""
        size_attribute = self._settings.size_attribute
        threshold = self._settings.min_size_to_expand

        size = self._read(item.path, size_attribute, stats)
        if size is None or size.value is None:
            return
        stats.visited += 1

        # Roots are always sampled, whatever their size
        if not item.is_root and size.value < threshold:
            logger.debug("Pruned %s (%d < %d bytes)", item.path, size.value, threshold)
            stats.pruned += 1
            return

        yield self._sample(item, size_attribute, size.value, stats)

        for attribute in self._attributes_for(item.path, stats):
            if attribute == size_attribute:
                continue
            sample = self._read(item.path, attribute, stats)
            if sample is not None and sample.value is not None:
                yield self._sample(item, attribute, sample.value, stats)

        if size.value < threshold:
            return
        if item.depth >= self._settings.max_depth:
            logger.debug("Not expanding %s: depth %d reached", item.path, item.depth)
            stats.depth_capped += 1
            return

        self._expand(item, frontier, stats)

    def _expand(self, item: WorkItem, frontier: Frontier, stats: WalkStats) -> None:
        try:
            names = [
                entry.name
                for entry in self._source.list_children(item.path)
                if entry.is_dir and entry.name not in _SKIPPED_NAMES
            ]
        except AttributeSourceError as e:
            logger.warning("Unable to list directory %s: %s", item.path, e)
            stats.read_errors += 1
            return

        # Reversed so that children are visited in listing order
        for name in reversed(names):
            frontier.push(item.child(name))

    def _attributes_for(self, path: str, stats: WalkStats) -> list[str]:
        """Resolve the attribute names to sample for a directory."""
        selection = self._settings.attributes
        if not isinstance(selection, DiscoverAttributes):
            return list(selection.names)

        try:
            names = self._source.list_attributes(path)
        except AttributeSourceError as e:
            logger.warning("Unable to list attributes of %s: %s", path, e)
            stats.read_errors += 1
            return []
        return sorted(name for name in names if name.startswith(selection.prefix))

    def _read(self, path: str, attribute: str, stats: WalkStats) -> AttributeSample | None:
        """Read and parse one attribute, logging any failure.

        Returns:
            The sample (possibly with an unparsed value), or None if the
            read itself failed.
        """
        try:
            raw = self._source.get_attribute(path, attribute)
        except AttributeNotFoundError as e:
            logger.warning("Attribute %s unavailable for %s: %s", attribute, path, e)
            stats.read_errors += 1
            return None
        except AttributeSourceError as e:
            logger.warning("Error reading attribute %s of %s: %s", attribute, path, e)
            stats.read_errors += 1
            return None

        sample = AttributeSample.parse(path, attribute, raw)
        if not sample.parsed:
            logger.warning("Unable to convert %r to float (%s of %s)", raw, attribute, path)
            stats.parse_errors += 1
        return sample

    @staticmethod
    def _sample(item: WorkItem, attribute: str, value: float, stats: WalkStats) -> MetricSample:
        stats.samples += 1
        return MetricSample(
            metric_name=metric_name(attribute),
            labels=item.labels(),
            value=value,
            help_text=help_text(attribute),
        )
