"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from typing import Annotated

import typer

from cephfs_exporter import __version__
from cephfs_exporter.cli.commands import config, serve, walk
from cephfs_exporter.utils.log import configure_logging

# Create main Typer app
app = typer.Typer(
    name="cephfs-exporter",
    help="Prometheus exporter for CephFS directory statistics.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"cephfs-exporter version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only log warnings and errors.",
        ),
    ] = False,
) -> None:
    """cephfs-exporter - CephFS directory statistics for Prometheus.

    Walks configured directory trees, reads the recursive statistics CephFS
    keeps on every directory and exposes them as labeled gauges.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    configure_logging(verbose=verbose, quiet=quiet)


# Register commands
app.add_typer(serve.app, name="serve")
app.add_typer(walk.app, name="walk")
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
