"""Quarry CLI - quarry command."""

from pathlib import Path

import click

from quarry import __version__
from quarry.cli.reindex import reindex_command
from quarry.cli.search import search_command
from quarry.cli.status import status_command
from quarry.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="quarry")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the search indexes (default: ~/.local/share/quarry)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, data_dir: Path | None) -> None:
    """Quarry - local hybrid search for tasks, notes, meetings and more."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["data_dir"] = data_dir
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(status_command, name="status")
cli.add_command(search_command, name="search")
cli.add_command(reindex_command, name="reindex")


if __name__ == "__main__":
    cli()
