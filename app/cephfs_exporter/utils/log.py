"""Logging setup for the command line.

Library modules only create loggers; the CLI installs a single Rich
handler on the root logger.
"""

import logging

from rich.logging import RichHandler

from cephfs_exporter.utils.formatting import err_console


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Route log records to stderr through Rich.

    Args:
        verbose: Log at DEBUG level.
        quiet: Log warnings and errors only. Ignored when verbose is set.
    """
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose, rich_tracebacks=True)],
        force=True,
    )
