"""quarry status command - show index sizes without loading the model."""

import json

import click

from quarry.cli.utils import load_cli_config
from quarry.core.errors import QuarryError
from quarry.search._internal.db import Database
from quarry.search._internal.indexing import KeywordIndex, VectorStore


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status_command(ctx: click.Context, as_json: bool) -> None:
    """Show what is indexed in the data directory."""
    config = load_cli_config(ctx)
    storage = config.storage

    if not storage.db_path.exists() and not storage.keyword_path.exists():
        if as_json:
            click.echo(json.dumps({"initialized": False, "data_dir": str(storage.data_path)}))
        else:
            click.echo(f"No index found in {storage.data_path}. Run 'quarry reindex' first.")
        return

    db = Database(storage.db_path)
    try:
        db.create_all()
        embedded = VectorStore(db).count()
        keyword_docs = KeywordIndex(storage.keyword_path).count()
    except QuarryError as e:
        raise click.ClickException(str(e)) from e
    finally:
        db.dispose()

    if as_json:
        click.echo(
            json.dumps(
                {
                    "initialized": True,
                    "data_dir": str(storage.data_path),
                    "keyword_documents": keyword_docs,
                    "embedded_entities": embedded,
                    "model": config.embedding.model_name,
                }
            )
        )
        return

    click.echo(f"Data dir: {storage.data_path}")
    click.echo(f"Keyword documents: {keyword_docs}")
    click.echo(f"Embedded entities: {embedded}")
    click.echo(f"Model: {config.embedding.model_name}")
