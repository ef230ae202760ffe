"""CLI utilities."""

from pathlib import Path

import click

from quarry.config import QuarryConfig, load_config
from quarry.core.errors import QuarryError
from quarry.core.logging import configure_logging


def load_cli_config(ctx: click.Context) -> QuarryConfig:
    """Load config for the --data-dir given to the group and apply logging.

    Raises:
        click.ClickException: If the configuration is invalid
    """
    obj = ctx.ensure_object(dict)
    data_dir: Path | None = obj.get("data_dir")
    try:
        config = load_config(data_dir)
    except QuarryError as e:
        raise click.ClickException(str(e)) from e

    if obj.get("verbose"):
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)
    return config
