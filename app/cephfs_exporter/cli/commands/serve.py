"""Serve command implementation.

Mounts the filesystem, then serves the directory metrics over HTTP until
interrupted.
"""

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
from cephfs_exporter.core.config import RefreshMode
from cephfs_exporter.core.registry import MetricRegistry
from cephfs_exporter.core.server import create_server, make_metrics_app
from cephfs_exporter.core.trigger import CollectionCycle, build_trigger
from cephfs_exporter.core.walker import TreeWalker
from cephfs_exporter.models.roots import load_roots
from cephfs_exporter.sources.base import SourceUnavailableError
from cephfs_exporter.utils.formatting import print_error, print_info

app = typer.Typer(
    help="Serve CephFS directory metrics for Prometheus.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def serve(
    config_path: ConfigOption = None,
    listen: Annotated[
        str | None,
        typer.Option(
            "--listen",
            "-l",
            envvar="TELEMETRY_ADDR",
            help="Host:Port for the metrics endpoint.",
        ),
    ] = None,
    metrics_path: Annotated[
        str | None,
        typer.Option("--metrics-path", envvar="TELEMETRY_PATH", help="URL path for metrics."),
    ] = None,
    paths_file: PathsFileOption = None,
    source: SourceOption = None,
    mount_root: MountRootOption = None,
    ceph_config: CephConfigOption = None,
    ceph_user: CephUserOption = None,
    refresh_mode: Annotated[
        RefreshMode | None,
        typer.Option(
            "--refresh-mode",
            envvar="REFRESH_MODE",
            help="Walk on every scrape or periodically in the background.",
            case_sensitive=False,
        ),
    ] = None,
    refresh_interval: Annotated[
        int | None,
        typer.Option(
            "--refresh-interval",
            envvar="REFRESH_INTERVAL",
            help="Seconds between background walks (periodic mode).",
        ),
    ] = None,
    expire_stale: Annotated[
        bool | None,
        typer.Option(
            "--expire-stale/--keep-stale",
            help="Drop series for directories missing from the latest walk.",
        ),
    ] = None,
    min_size: MinSizeOption = None,
    max_depth: MaxDepthOption = None,
    discover: DiscoverOption = None,
) -> None:
    """Serve CephFS directory metrics for Prometheus."""
    settings = resolve_settings(
        config_path,
        listen_address=listen,
        metrics_path=metrics_path,
        paths_file=paths_file,
        source=source,
        mount_root=mount_root,
        ceph_config=ceph_config,
        ceph_user=ceph_user,
        refresh_mode=refresh_mode,
        refresh_interval=refresh_interval,
        expire_stale=expire_stale,
        walker=walker_overrides(min_size, max_depth, discover),
    )

    # Configuration errors are fatal before anything is mounted
    roots = require_roots(settings)
    print_info(f"Loaded {len(roots)} root(s) from {settings.paths_file}")

    attribute_source = build_source(settings)
    try:
        attribute_source.open()
    except SourceUnavailableError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    try:
        registry = MetricRegistry()
        walker = TreeWalker(attribute_source, settings.walker)
        cycle = CollectionCycle(walker, lambda: load_roots(settings.paths_file), roots)
        trigger = build_trigger(
            settings.refresh_mode,
            cycle,
            registry,
            interval=settings.refresh_interval,
            expire_stale=settings.expire_stale,
        )
        wsgi_app = make_metrics_app(registry, trigger, settings.metrics_path)

        host, port = settings.bind
        try:
            server = create_server(wsgi_app, host, port)
        except OSError as e:
            print_error(f"Cannot listen on {settings.listen_address}: {e}")
            raise typer.Exit(code=1) from e

        # A registry conflict stops the HTTP loop from the collecting thread
        trigger.on_fatal = server.shutdown
        trigger.start()
        print_info(
            f"Serving {settings.refresh_mode.value} metrics on "
            f"http://{host}:{port}{settings.metrics_path}"
        )
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            print_info("Shutting down.")
        finally:
            trigger.stop()
            server.server_close()
    finally:
        attribute_source.close()

    if trigger.fatal_error is not None:
        print_error(f"Collection stopped: {trigger.fatal_error}")
        raise typer.Exit(code=1)
