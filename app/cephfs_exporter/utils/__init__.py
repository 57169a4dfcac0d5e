"""Utility modules for cephfs-exporter.

This module exports commonly used utility functions.
"""

from cephfs_exporter.utils.formatting import (
    console,
    create_sample_table,
    err_console,
    format_bytes,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from cephfs_exporter.utils.log import configure_logging

__all__ = [
    "configure_logging",
    "console",
    "create_sample_table",
    "err_console",
    "format_bytes",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
]
