"""CLI package for cephfs-exporter.

This package contains the Typer application and all subcommands.
"""

from cephfs_exporter.cli.main import app

__all__ = ["app"]
