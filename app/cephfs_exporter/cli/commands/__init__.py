"""CLI commands for cephfs-exporter.

This package contains all subcommand implementations.
"""

from cephfs_exporter.cli.commands import config, serve, walk

__all__ = ["config", "serve", "walk"]
