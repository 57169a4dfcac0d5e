"""Collection triggers.

A trigger decides when the tree walker runs and how its samples reach the
metric registry. Two modes share the same walker:

1. On-demand (RefreshMode.ON_DEMAND):
   Every scrape walks synchronously and applies the samples to the
   registry as one snapshot before the response is rendered.

2. Periodic (RefreshMode.PERIODIC):
   A ticker starts a walk every ``interval`` seconds in the background.
   The finished snapshot is applied to the registry atomically and scrapes
   never wait for a walk. A tick that finds a walk still running is
   skipped.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence

from cephfs_exporter.core.config import RefreshMode
from cephfs_exporter.core.registry import MetricRegistry, RegistryConflictError
from cephfs_exporter.core.walker import TreeWalker
from cephfs_exporter.models.roots import RootEntry, RootsConfigError
from cephfs_exporter.models.samples import MetricSample, WalkStats

logger = logging.getLogger(__name__)

RootsLoader = Callable[[], Sequence[RootEntry]]
FatalCallback = Callable[[], None]


class CollectionCycle:
    """One collection pass: load the root set, then walk it.

    The root set is reloaded on every cycle. Once a root set has been
    loaded successfully, a later load failure is logged and the previous
    root set is reused.

    Args:
        walker: Tree walker to run.
        load_roots: Callable returning the current root set.
        roots: Root set already loaded at startup, used as the fallback
            until the first successful reload.
    """

    def __init__(
        self,
        walker: TreeWalker,
        load_roots: RootsLoader,
        roots: Sequence[RootEntry] | None = None,
    ) -> None:
        self._walker = walker
        self._load_roots = load_roots
        self._roots: tuple[RootEntry, ...] | None = tuple(roots) if roots is not None else None
        self._lock = threading.Lock()

    def roots(self) -> tuple[RootEntry, ...]:
        """Load the root set for this cycle.

        Raises:
            RootsConfigError: If no root set has ever been loaded and
                loading fails now.
        """
        try:
            roots = tuple(self._load_roots())
        except RootsConfigError as e:
            with self._lock:
                if self._roots is None:
                    raise
                logger.error("Reloading root set failed, reusing previous one: %s", e)
                return self._roots

        with self._lock:
            self._roots = roots
        return roots

    def run(self, stats: WalkStats) -> Iterator[MetricSample]:
        """Walk the current root set, filling in ``stats``."""
        return self._walker.walk(self.roots(), stats)


class CollectionTrigger(ABC):
    """Abstract base class for collection triggers.

    A registry conflict is fatal: the trigger records it in
    ``fatal_error``, stops collecting and calls ``on_fatal`` so the
    process can shut down.

    Args:
        cycle: Collection cycle to run.
        registry: Registry receiving the samples.
        expire_stale: Remove series not refreshed by a walk.
        on_fatal: Called once when a fatal error stops collection.
    """

    def __init__(
        self,
        cycle: CollectionCycle,
        registry: MetricRegistry,
        *,
        expire_stale: bool = False,
        on_fatal: FatalCallback | None = None,
    ) -> None:
        self._cycle = cycle
        self._registry = registry
        self._expire_stale = expire_stale
        self.on_fatal = on_fatal
        self.last_stats: WalkStats | None = None
        self.fatal_error: RegistryConflictError | None = None

    @property
    @abstractmethod
    def mode(self) -> RefreshMode:
        """Return the refresh mode this trigger implements."""

    @abstractmethod
    def before_scrape(self) -> None:
        """Called by the HTTP layer before rendering a scrape response."""

    def start(self) -> None:  # noqa: B027
        """Start background work. No-op by default."""

    def stop(self) -> None:  # noqa: B027
        """Stop background work. No-op by default."""

    def _publish(self, samples: list[MetricSample], stats: WalkStats) -> None:
        """Apply a finished walk to the registry as one snapshot."""
        keep_roots = [(r.organisation, r.user, r.path) for r in stats.aborted_roots]
        self._registry.apply(samples, expire=self._expire_stale, keep_roots=keep_roots)
        self.last_stats = stats

    def _fail(self, error: RegistryConflictError) -> None:
        logger.critical("Metric registry conflict, stopping collection: %s", error)
        self.fatal_error = error
        if self.on_fatal is not None:
            self.on_fatal()


class OnDemandTrigger(CollectionTrigger):
    """Walks synchronously on every scrape."""

    @property
    def mode(self) -> RefreshMode:
        return RefreshMode.ON_DEMAND

    def before_scrape(self) -> None:
        if self.fatal_error is not None:
            return
        stats = WalkStats()
        samples = list(self._cycle.run(stats))
        try:
            self._publish(samples, stats)
        except RegistryConflictError as e:
            self._fail(e)


class PeriodicTrigger(CollectionTrigger):
    """Walks in the background on a fixed interval.

    Args:
        cycle: Collection cycle to run.
        registry: Registry receiving the snapshots.
        interval: Seconds between ticks.
        expire_stale: Remove series not refreshed by a walk.
        on_fatal: Called once when a fatal error stops collection.
    """

    def __init__(
        self,
        cycle: CollectionCycle,
        registry: MetricRegistry,
        interval: float,
        *,
        expire_stale: bool = False,
        on_fatal: FatalCallback | None = None,
    ) -> None:
        super().__init__(cycle, registry, expire_stale=expire_stale, on_fatal=on_fatal)
        self._interval = interval
        self._walk_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._ticker: threading.Thread | None = None
        self._worker: threading.Thread | None = None

    @property
    def mode(self) -> RefreshMode:
        return RefreshMode.PERIODIC

    @property
    def running(self) -> bool:
        return self._ticker is not None and self._ticker.is_alive()

    def before_scrape(self) -> None:
        """Scrapes read the last applied snapshot; nothing to do."""

    def run_once(self) -> bool:
        """Run one walk unless another one is in flight.

        Returns:
            True if a walk ran, False if it was skipped.

        Raises:
            RegistryConflictError: If a gauge cannot be registered.
        """
        if not self._walk_lock.acquire(blocking=False):
            logger.warning("Previous walk still running, skipping this refresh")
            return False

        try:
            stats = WalkStats()
            samples = list(self._cycle.run(stats))
            self._publish(samples, stats)
        finally:
            self._walk_lock.release()
        return True

    def start(self) -> None:
        """Start the ticker thread. The first walk starts immediately."""
        if self.running:
            return
        self._stop_event.clear()
        self._ticker = threading.Thread(target=self._tick_loop, name="refresh-ticker", daemon=True)
        self._ticker.start()
        logger.info("Periodic refresh started (every %ss)", self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the ticker and wait briefly for a running walk."""
        self._stop_event.set()
        if self._ticker is not None:
            self._ticker.join(timeout)
            self._ticker = None
        if self._worker is not None:
            self._worker.join(timeout)
            self._worker = None
        logger.info("Periodic refresh stopped")

    def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            if self._walk_lock.locked():
                logger.warning("Previous walk still running, skipping this refresh")
            else:
                self._worker = threading.Thread(target=self._work, name="refresh-walk", daemon=True)
                self._worker.start()
            self._stop_event.wait(self._interval)

    def _work(self) -> None:
        try:
            self.run_once()
        except RegistryConflictError as e:
            self._stop_event.set()
            self._fail(e)
        except RootsConfigError as e:
            logger.error("Collection cycle failed: %s", e)
        except Exception:
            logger.exception("Collection cycle failed")


def build_trigger(
    mode: RefreshMode,
    cycle: CollectionCycle,
    registry: MetricRegistry,
    *,
    interval: float = 300.0,
    expire_stale: bool = False,
    on_fatal: FatalCallback | None = None,
) -> CollectionTrigger:
    """Create the trigger for a refresh mode.

    Args:
        mode: Refresh mode selected in the settings.
        cycle: Collection cycle to run.
        registry: Registry receiving the samples.
        interval: Seconds between walks (periodic mode only).
        expire_stale: Remove series not refreshed by a walk.
        on_fatal: Called once when a fatal error stops collection.

    Returns:
        CollectionTrigger for the mode.
    """
    if mode == RefreshMode.PERIODIC:
        return PeriodicTrigger(
            cycle, registry, interval, expire_stale=expire_stale, on_fatal=on_fatal
        )
    return OnDemandTrigger(cycle, registry, expire_stale=expire_stale, on_fatal=on_fatal)
