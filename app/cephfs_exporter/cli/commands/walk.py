"""Walk command implementation.

Runs a single walk over the root set and prints the samples instead of
serving them. Useful to tune thresholds before deploying the exporter.
"""

import json
from enum import Enum
from typing import Annotated

import typer

from cephfs_exporter.cli.types import (
    CephConfigOption,
    CephUserOption,
    ConfigOption,
    DiscoverOption,
    MaxDepthOption,
    MinSizeOption,
    MountRootOption,
    PathsFileOption,
    SourceOption,
    build_source,
    require_roots,
    resolve_settings,
    walker_overrides,
)
from cephfs_exporter.core.naming import metric_name
from cephfs_exporter.core.walker import TreeWalker
from cephfs_exporter.models.samples import MetricSample, WalkStats
from cephfs_exporter.sources.base import SourceUnavailableError
from cephfs_exporter.utils.formatting import (
    console,
    create_sample_table,
    format_bytes,
    print_error,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Walk the root set once and print the samples.",
    invoke_without_command=True,
)


class OutputFormat(str, Enum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


@app.callback(invoke_without_command=True)
def walk(
    config_path: ConfigOption = None,
    paths_file: PathsFileOption = None,
    source: SourceOption = None,
    mount_root: MountRootOption = None,
    ceph_config: CephConfigOption = None,
    ceph_user: CephUserOption = None,
    min_size: MinSizeOption = None,
    max_depth: MaxDepthOption = None,
    discover: DiscoverOption = None,
    output_format: Annotated[
        OutputFormat,
        typer.Option(
            "--format",
            "-f",
            help="Output format.",
            case_sensitive=False,
        ),
    ] = OutputFormat.TABLE,
    limit: Annotated[
        int | None,
        typer.Option(
            "--limit",
            "-n",
            help="Limit number of displayed samples.",
        ),
    ] = None,
) -> None:
    """Walk the root set once and print the samples."""
    settings = resolve_settings(
        config_path,
        paths_file=paths_file,
        source=source,
        mount_root=mount_root,
        ceph_config=ceph_config,
        ceph_user=ceph_user,
        walker=walker_overrides(min_size, max_depth, discover),
    )
    roots = require_roots(settings)

    stats = WalkStats()
    try:
        with build_source(settings) as attribute_source:
            walker = TreeWalker(attribute_source, settings.walker)
            samples = list(walker.walk(roots, stats))
    except SourceUnavailableError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    display = samples[:limit] if limit else samples

    if output_format == OutputFormat.JSON:
        _print_json(display, stats)
    else:
        _print_table(display, settings.walker.size_attribute)
        _print_summary(stats, len(samples), len(display))

    if not stats.complete:
        raise typer.Exit(code=1)


def _print_table(samples: list[MetricSample], size_attribute: str) -> None:
    """Display samples as a Rich table."""
    size_metric = metric_name(size_attribute)
    table = create_sample_table()
    for s in samples:
        value = format_bytes(s.value) if s.metric_name == size_metric else f"{s.value:g}"
        table.add_row(s.labels["path"], s.labels["org"], s.labels["user"], s.metric_name, value)
    console.print(table)


def _print_summary(stats: WalkStats, total: int, shown: int) -> None:
    console.print(
        f"\n[dim]{stats.visited} directories visited, {total} samples, "
        f"{stats.pruned} pruned, {stats.depth_capped} at max depth[/dim]"
    )
    if shown < total:
        console.print(f"[dim](showing {shown} of {total})[/dim]")
    if stats.read_errors or stats.parse_errors:
        print_warning(f"{stats.read_errors} read errors, {stats.parse_errors} unparsable values")
    for root in stats.aborted_roots:
        print_warning(f"Walk of {root.path} aborted: too many pending directories")
    if stats.complete:
        print_success("Walk complete.")


def _print_json(samples: list[MetricSample], stats: WalkStats) -> None:
    """Display samples and walk counters as JSON."""
    data = {
        "samples": [
            {"metric": s.metric_name, "labels": s.labels, "value": s.value} for s in samples
        ],
        "stats": {
            "visited": stats.visited,
            "pruned": stats.pruned,
            "depth_capped": stats.depth_capped,
            "samples": stats.samples,
            "read_errors": stats.read_errors,
            "parse_errors": stats.parse_errors,
            "aborted_roots": [root.path for root in stats.aborted_roots],
        },
    }
    console.print_json(json.dumps(data))
