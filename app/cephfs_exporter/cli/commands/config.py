"""Settings file commands.

Provides commands to write a default settings file and to show the
effective settings.
"""

from pathlib import Path
from typing import Annotated

import tomli_w
import typer

from cephfs_exporter.cli.types import ConfigOption, resolve_settings
from cephfs_exporter.core.config import ConfigError, ExporterSettings, save_settings
from cephfs_exporter.core.paths import get_settings_path
from cephfs_exporter.utils.formatting import console, print_error, print_success, print_warning

app = typer.Typer(
    help="Manage the exporter settings file.",
    no_args_is_help=True,
)


@app.command()
def init(
    path: Annotated[
        Path | None,
        typer.Option("--path", help="Where to write the settings file."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing file."),
    ] = False,
) -> None:
    """Write a settings file with default values."""
    target = path or get_settings_path()
    if target.exists() and not force:
        print_warning(f"Settings file already exists: {target} (use --force to overwrite)")
        raise typer.Exit(code=1)

    try:
        saved = save_settings(ExporterSettings(), target)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Settings written to {saved}")


@app.command()
def show(config_path: ConfigOption = None) -> None:
    """Show the effective settings as TOML."""
    settings = resolve_settings(config_path)
    data = settings.model_dump(mode="json", exclude_none=True)
    console.print(tomli_w.dumps(data), markup=False, highlight=False)
