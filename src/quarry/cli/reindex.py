"""quarry reindex command - rebuild both indexes from the application database."""

import asyncio
from pathlib import Path

import click

from quarry.cli.utils import load_cli_config
from quarry.config import QuarryConfig
from quarry.core.errors import QuarryError
from quarry.core.progress import percent_bar, pluralize, status
from quarry.search.ops import ReindexStats, SearchService
from quarry.search.sources import SqlEntitySource


async def _run_reindex(config: QuarryConfig, source_db: Path) -> ReindexStats:
    source = SqlEntitySource.from_path(source_db)
    service = SearchService(config)
    try:
        with percent_bar("Reindexing") as report:
            await service.initialize()
            return await service.reindex_all(source, progress=report)
    finally:
        await service.shutdown()
        source.dispose()


@click.command()
@click.option(
    "--source-db",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="SQLite database of the application (tasks, notes, meetings, ...)",
)
@click.pass_context
def reindex_command(ctx: click.Context, source_db: Path) -> None:
    """Clear both indexes and rebuild them from SOURCE_DB."""
    config = load_cli_config(ctx)

    try:
        stats = asyncio.run(_run_reindex(config, source_db))
    except QuarryError as e:
        raise click.ClickException(str(e)) from e

    status(
        f"Indexed {pluralize(stats.entities_indexed, 'entity', 'entities')} "
        f"in {stats.duration_seconds:.2f}s",
        style="success",
    )
    if stats.entities_failed:
        status(f"{pluralize(stats.entities_failed, 'entity', 'entities')} failed (see log)", style="warning")
