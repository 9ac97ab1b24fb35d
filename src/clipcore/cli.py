"""Command-line interface for ClipCore."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import structlog
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from clipcore import __version__
from clipcore.config import Config
from clipcore.extractor import ExtractResult, extract, normalize_image_url
from clipcore.observability import configure_logging
from clipcore.utils import atomic_write_json

console = Console()
logger = structlog.get_logger(__name__)


def load_config(config_path: Optional[Path], log_level: Optional[str]) -> Config:
    """Load the YAML config (or defaults) and apply the command-line log level."""
    try:
        config = Config.from_yaml(config_path) if config_path else Config()
    except (ValidationError, yaml.YAMLError, FileNotFoundError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    if log_level:
        config.monitoring.log_level = log_level
    return config


def render_table(result: ExtractResult) -> Table:
    table = Table(title="Extraction Result")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("title", result.title)
    table.add_row("domain", result.domain)
    table.add_row("author", result.author or "-")
    table.add_row("publish_time", result.publish_time or "-")
    table.add_row("word_count", str(result.word_count))
    table.add_row("blocks", str(len(result.blocks)))
    table.add_row("images", str(len(result.images)))
    for image in result.images:
        table.add_row(f"image[{image.order}]", image.normalized_url)
    return table


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """ClipCore - article extraction for note capture."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(Path(config) if config else None, log_level)
    configure_logging(ctx.obj["config"].monitoring)


@cli.command("extract")
@click.argument("snapshot", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--url", required=True, help="URL the snapshot was taken from")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the result as JSON to this file")
@click.option(
    "--format",
    "output_format",
    default="json",
    type=click.Choice(["json", "table"]),
    help="Output format",
)
@click.pass_context
def extract_command(ctx: click.Context, snapshot: Any, url: str, output: Optional[str], output_format: str) -> None:
    """Extract the article from an HTML SNAPSHOT file (stdin by default)."""
    html = snapshot.read()
    if not html.strip():
        raise click.UsageError("The snapshot is empty")

    result = asyncio.run(extract(html, url, config=ctx.obj["config"]))
    payload: Dict[str, Any] = result.to_dict()

    if output:
        atomic_write_json(Path(output), payload)
        console.print(f"[green]Result saved to {output}[/green]", highlight=False)

    if output_format == "table":
        console.print(render_table(result))
    elif not output:
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))

    if result.is_empty:
        logger.warning("No article content found", url=url)
        sys.exit(1)


@cli.command("normalize")
@click.argument("urls", nargs=-1, required=True)
@click.option("--base-url", default=None, help="Base URL for resolving relative image URLs")
def normalize_command(urls: Tuple[str, ...], base_url: Optional[str]) -> None:
    """Print the canonical form of each image URL."""
    for url in urls:
        click.echo(normalize_image_url(url, base_url))


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
