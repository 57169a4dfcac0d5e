"""Unit tests for the metric registry."""

import threading
from collections.abc import Iterator

import pytest
from cephfs_exporter.core.registry import LABEL_NAMES, MetricRegistry, RegistryConflictError
from cephfs_exporter.models.samples import MetricSample
from prometheus_client import Gauge
from prometheus_client.parser import text_string_to_metric_families

RBYTES = "cephfs_xattr_ceph_dir_rbytes"
RFILES = "cephfs_xattr_ceph_dir_rfiles"


def _sample(name: str, path: str, value: float, user: str = "alice") -> MetricSample:
    return MetricSample(
        metric_name=name,
        labels={"org": "acme", "user": user, "path": path},
        value=value,
        help_text="CephFS directory attribute test",
    )


def _value(
    registry: MetricRegistry, path: str, name: str = RBYTES, user: str = "alice"
) -> float | None:
    return registry.collector_registry.get_sample_value(
        name, {"org": "acme", "user": user, "path": path}
    )


def _rendered_paths(registry: MetricRegistry) -> dict[str, float]:
    """Parse the exposition into ``{path: value}`` for the rbytes gauge."""
    values: dict[str, float] = {}
    for family in text_string_to_metric_families(registry.exposition().decode()):
        for sample in family.samples:
            if sample.name == RBYTES:
                values[sample.labels["path"]] = sample.value
    return values


class TestGetOrCreate:
    """Tests for MetricRegistry.get_or_create."""

    def test_creates_once(self) -> None:
        """Repeated lookups return the same gauge."""
        registry = MetricRegistry()

        first = registry.get_or_create(RBYTES, "help")
        second = registry.get_or_create(RBYTES, "other help")

        assert first is second
        assert registry.metric_names == [RBYTES]

    def test_label_names(self) -> None:
        """Gauges carry the org, user and path labels."""
        assert LABEL_NAMES == ("org", "user", "path")

    def test_conflict_with_foreign_collector(self) -> None:
        """A name already registered elsewhere raises RegistryConflictError."""
        registry = MetricRegistry()
        Gauge(RBYTES, "foreign", registry=registry.collector_registry)

        with pytest.raises(RegistryConflictError, match=RBYTES):
            registry.get_or_create(RBYTES)


class TestRecord:
    """Tests for recording samples."""

    def test_record_sets_value(self) -> None:
        """Recorded values appear in the exposition."""
        registry = MetricRegistry()

        registry.record(_sample(RBYTES, "/data/alice", 500))

        assert _value(registry, "/data/alice") == 500.0
        text = registry.exposition().decode()
        assert f"# HELP {RBYTES} CephFS directory attribute test" in text
        assert f"# TYPE {RBYTES} gauge" in text

    def test_record_overwrites(self) -> None:
        """A later value replaces an earlier one for the same series."""
        registry = MetricRegistry()

        registry.record(_sample(RBYTES, "/data/alice", 500))
        registry.record(_sample(RBYTES, "/data/alice", 750))

        assert _rendered_paths(registry) == {"/data/alice": 750.0}
        assert len(registry.series) == 1

    def test_one_gauge_per_name(self) -> None:
        """Samples for different paths share one gauge."""
        registry = MetricRegistry()

        registry.record(_sample(RBYTES, "/a", 1))
        registry.record(_sample(RBYTES, "/b", 2))
        registry.record(_sample(RFILES, "/a", 3))

        assert registry.metric_names == [RBYTES, RFILES]
        assert len(registry.series) == 3
        assert _value(registry, "/a", RFILES) == 3.0

    def test_empty_help_uses_default(self) -> None:
        """A sample without help text gets the generic HELP string."""
        registry = MetricRegistry()

        registry.record(MetricSample(RBYTES, {"org": "o", "user": "u", "path": "/"}, 1))

        assert "A dynamically generated metric" in registry.exposition().decode()


class TestApply:
    """Tests for snapshot application."""

    def test_returns_written_series(self) -> None:
        """apply returns the keys of the series it wrote."""
        registry = MetricRegistry()

        seen = registry.apply([_sample(RBYTES, "/a", 1), _sample(RFILES, "/a", 2)])

        assert seen == {
            (RBYTES, "acme", "alice", "/a"),
            (RFILES, "acme", "alice", "/a"),
        }

    def test_keeps_unwritten_series(self) -> None:
        """Series missing from a snapshot keep their last value."""
        registry = MetricRegistry()
        registry.apply([_sample(RBYTES, "/a", 1), _sample(RBYTES, "/b", 2)])

        registry.apply([_sample(RBYTES, "/a", 5)])

        assert _rendered_paths(registry) == {"/a": 5.0, "/b": 2.0}

    def test_expire_drops_unwritten_series(self) -> None:
        """With expire set, series missing from the snapshot are removed."""
        registry = MetricRegistry()
        registry.apply([_sample(RBYTES, "/a", 1), _sample(RBYTES, "/b", 2)])

        registry.apply([_sample(RBYTES, "/a", 5)], expire=True)

        assert _rendered_paths(registry) == {"/a": 5.0}
        assert registry.series == {(RBYTES, "acme", "alice", "/a")}

    def test_expire_honours_kept_roots(self) -> None:
        """Series of an aborted root survive an expiring snapshot."""
        registry = MetricRegistry()
        registry.apply([_sample(RBYTES, "/a", 1), _sample(RBYTES, "/wide/sub", 2)])

        registry.apply(
            [_sample(RBYTES, "/a", 5)],
            expire=True,
            keep_roots=[("acme", "alice", "/wide")],
        )

        assert _rendered_paths(registry) == {"/a": 5.0, "/wide/sub": 2.0}

    def test_scrape_sees_whole_snapshot(self) -> None:
        """A scrape during apply waits and then sees the finished snapshot."""
        registry = MetricRegistry()
        registry.apply([_sample(RBYTES, "/a", 1), _sample(RBYTES, "/b", 2)])
        midway = threading.Event()
        release = threading.Event()

        def snapshot() -> Iterator[MetricSample]:
            yield _sample(RBYTES, "/a", 5)
            midway.set()
            release.wait(5)

        writer = threading.Thread(
            target=registry.apply, args=(snapshot(),), kwargs={"expire": True}
        )
        writer.start()
        assert midway.wait(5)

        observed: list[dict[str, float]] = []
        reader = threading.Thread(target=lambda: observed.append(_rendered_paths(registry)))
        reader.start()
        reader.join(0.2)
        assert reader.is_alive()

        release.set()
        writer.join(5)
        reader.join(5)

        assert observed == [{"/a": 5.0}]


class TestExpireStale:
    """Tests for stale series removal."""

    def test_removes_unseen_series(self) -> None:
        """Series not written by the latest walk are removed."""
        registry = MetricRegistry()
        registry.apply([_sample(RBYTES, "/a", 1), _sample(RBYTES, "/b", 2)])
        seen = registry.apply([_sample(RBYTES, "/a", 1)])

        removed = registry.expire_stale(seen)

        assert removed == 1
        assert _value(registry, "/b") is None
        assert registry.series == {(RBYTES, "acme", "alice", "/a")}

    def test_keeps_series_under_aborted_root(self) -> None:
        """Series at or below a kept root survive."""
        registry = MetricRegistry()
        registry.apply(
            [
                _sample(RBYTES, "/wide", 1),
                _sample(RBYTES, "/wide/sub", 2),
                _sample(RBYTES, "/widened", 3),
            ]
        )

        removed = registry.expire_stale(set(), keep_roots=[("acme", "alice", "/wide")])

        assert removed == 1
        paths = {key[3] for key in registry.series}
        assert paths == {"/wide", "/wide/sub"}

    def test_kept_root_is_per_user(self) -> None:
        """The same path under another user is not kept."""
        registry = MetricRegistry()
        registry.apply([_sample(RBYTES, "/wide", 1), _sample(RBYTES, "/wide", 2, user="bob")])

        removed = registry.expire_stale(set(), keep_roots=[("acme", "alice", "/wide")])

        assert removed == 1
        assert registry.series == {(RBYTES, "acme", "alice", "/wide")}

    def test_filesystem_root_keeps_everything(self) -> None:
        """An aborted root at ``/`` keeps every series of its user."""
        registry = MetricRegistry()
        registry.apply([_sample(RBYTES, "/", 1), _sample(RBYTES, "/deep/dir", 2)])

        assert registry.expire_stale(set(), keep_roots=[("acme", "alice", "/")]) == 0

    def test_nothing_to_remove(self) -> None:
        """Expiring with every series seen is a no-op."""
        registry = MetricRegistry()
        seen = registry.apply([_sample(RBYTES, "/a", 1)])

        assert registry.expire_stale(seen) == 0
