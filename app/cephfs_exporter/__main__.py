"""Allow running the exporter with ``python -m cephfs_exporter``."""

from cephfs_exporter.cli.main import app

app()
