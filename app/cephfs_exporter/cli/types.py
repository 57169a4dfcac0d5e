"""Shared options and helpers for CLI commands.

This module provides the option types shared by ``serve`` and ``walk``
and the helpers that turn them into settings and an attribute source.
"""

from pathlib import Path
from typing import Annotated

import typer

from cephfs_exporter.core.config import (
    ConfigError,
    ConfigNotFoundError,
    ExporterSettings,
    SourceKind,
    apply_overrides,
    load_settings,
)
from cephfs_exporter.models.roots import RootEntry, RootsConfigError, load_roots
from cephfs_exporter.sources.base import AttributeSource
from cephfs_exporter.sources.cephfs import CephFSSource
from cephfs_exporter.sources.local import LocalMountSource
from cephfs_exporter.utils.formatting import print_error

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        envvar="CEPHFS_EXPORTER_CONFIG",
        help="Settings file (default: ~/.config/cephfs-exporter/exporter.toml).",
    ),
]
PathsFileOption = Annotated[
    Path | None,
    typer.Option("--paths-file", "-p", envvar="PATHS_FILE", help="JSON file with the root set."),
]
SourceOption = Annotated[
    SourceKind | None,
    typer.Option("--source", help="Filesystem access method.", case_sensitive=False),
]
MountRootOption = Annotated[
    Path | None,
    typer.Option("--mount-root", help="Local CephFS mount point (local source)."),
]
CephConfigOption = Annotated[
    Path | None,
    typer.Option("--ceph-config", envvar="CEPH_CONFIG", help="Path to Ceph config file."),
]
CephUserOption = Annotated[
    str | None,
    typer.Option("--ceph-user", envvar="CEPH_USER", help="Ceph user to connect to cluster."),
]
MinSizeOption = Annotated[
    int | None,
    typer.Option("--min-size", min=0, help="Minimum directory size in bytes to expand."),
]
MaxDepthOption = Annotated[
    int | None,
    typer.Option("--max-depth", min=0, help="Maximum depth below a root to expand."),
]
DiscoverOption = Annotated[
    str | None,
    typer.Option(
        "--discover",
        help="Sample every attribute starting with this prefix instead of the fixed list.",
    ),
]


def resolve_settings(config_path: Path | None, **overrides: object) -> ExporterSettings:
    """Build the effective settings for a command.

    An explicit settings file must exist. The default file is optional.
    Non-None overrides replace file values.

    Raises:
        typer.Exit: With code 1 if the settings are invalid.
    """
    try:
        try:
            settings = load_settings(config_path)
        except ConfigNotFoundError:
            if config_path is not None:
                raise
            settings = ExporterSettings()
        return apply_overrides(settings, **overrides)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def walker_overrides(
    min_size: int | None,
    max_depth: int | None,
    discover: str | None,
) -> dict[str, object]:
    """Map walker CLI options onto the walker settings section."""
    overrides: dict[str, object] = {"min_size_to_expand": min_size, "max_depth": max_depth}
    if discover is not None:
        overrides["attributes"] = {"mode": "discover", "prefix": discover}
    return overrides


def require_roots(settings: ExporterSettings) -> tuple[RootEntry, ...]:
    """Load the root set or exit.

    Raises:
        typer.Exit: With code 1 if the root set cannot be loaded.
    """
    try:
        return load_roots(settings.paths_file)
    except RootsConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def build_source(settings: ExporterSettings) -> AttributeSource:
    """Create the attribute source selected in the settings."""
    if settings.source == SourceKind.LOCAL and settings.mount_root is not None:
        return LocalMountSource(settings.mount_root)
    return CephFSSource(
        conffile=str(settings.ceph_config),
        auth_id=settings.ceph_user,
        filesystem_name=settings.filesystem_name,
    )
