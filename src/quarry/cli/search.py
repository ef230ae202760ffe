"""quarry search command - run a hybrid query."""

import asyncio
import json

import click

from quarry.cli.utils import load_cli_config
from quarry.config import QuarryConfig
from quarry.core.errors import QuarryError
from quarry.search.models import EntityType, HybridSearchResult, SearchResult
from quarry.search.ops import SearchService

_TYPE_CHOICES = [t.value for t in EntityType]


async def _run_search(
    config: QuarryConfig,
    query: str,
    limit: int | None,
    entity_types: list[EntityType] | None,
) -> HybridSearchResult:
    service = SearchService(config)
    try:
        await service.initialize()
        return await service.search(query, limit=limit, entity_types=entity_types)
    finally:
        await service.shutdown()


def _echo_hits(heading: str, hits: list[SearchResult]) -> None:
    click.echo(click.style(heading, bold=True))
    if not hits:
        click.echo("  (none)")
        return
    for hit in hits:
        label = hit.title or hit.entity_id
        click.echo(f"  [{hit.entity_type.value}] {label}  ({hit.score:.3f})")
        if hit.preview:
            click.echo(f"      {hit.preview.replace(chr(10), ' ')[:120]}")


@click.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, default=None, help="Results per path")
@click.option(
    "--type",
    "types",
    type=click.Choice(_TYPE_CHOICES),
    multiple=True,
    help="Restrict to entity type (repeatable)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def search_command(
    ctx: click.Context,
    query: str,
    limit: int | None,
    types: tuple[str, ...],
    as_json: bool,
) -> None:
    """Search the index for QUERY (keyword and semantic)."""
    config = load_cli_config(ctx)
    entity_types = [EntityType(t) for t in types] or None

    try:
        result = asyncio.run(_run_search(config, query, limit, entity_types))
    except QuarryError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    _echo_hits("Keyword matches", result.keyword)
    _echo_hits("Semantic matches", result.semantic)
