"""CLI entry point for snapdiff."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from snapdiff.capture.orchestrator import CaptureOrchestrator
from snapdiff.compare.comparator import Comparator
from snapdiff.errors import SnapdiffError
from snapdiff.models.config import ServiceConfig
from snapdiff.models.snapshot import CaptureRequest, CompareRequest
from snapdiff.storage import ImageStore

console = Console()

DEFAULT_CONFIG = "snapdiff.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_config(path: str) -> ServiceConfig:
    """Config file (when present) with environment overrides applied on top."""
    base = ServiceConfig.load(path) if Path(path).exists() else None
    return ServiceConfig.from_env(base)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str) -> None:
    """Visual regression snapshots: capture, compare, serve."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


def _config(ctx: click.Context) -> ServiceConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", "-p", type=int, default=None, help="Port (overrides config)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    import uvicorn

    from snapdiff.api.app import create_app

    cfg = _config(ctx)
    app = create_app(cfg)
    console.print(f"[green]snapdiff listening on[/green] http://{host or cfg.host}:{port or cfg.port}")
    uvicorn.run(app, host=host or cfg.host, port=port or cfg.port, log_config=None)


@cli.command()
@click.argument("url")
@click.option("--time", "-t", "time_label", required=True,
              type=click.Choice(["before", "after"]), help="Which side of the comparison")
@click.option("--test-id", "-i", required=True, help="Test identifier")
@click.pass_context
def capture(ctx: click.Context, url: str, time_label: str, test_id: str) -> None:
    """Capture a full-page screenshot of URL."""
    cfg = _config(ctx)
    orchestrator = CaptureOrchestrator(cfg, ImageStore(cfg.storage_path))
    request = CaptureRequest(url=url, time=time_label, test_id=test_id)
    try:
        result = asyncio.run(orchestrator.capture(request))
    except SnapdiffError as e:
        _print_error(e)
        sys.exit(1)
    console.print(f"[green]Captured[/green] {result.time.value}/{result.test_id} -> "
                  f"[blue]{orchestrator.store.path_for(result.time, result.test_id)}[/blue]")


@cli.command()
@click.argument("test_id")
@click.option("--threshold", type=float, default=None, help="Perceptual threshold 0..1 (overrides config)")
@click.pass_context
def compare(ctx: click.Context, test_id: str, threshold: float | None) -> None:
    """Compare the before and after captures of TEST_ID."""
    cfg = _config(ctx)
    store = ImageStore(cfg.storage_path)
    comparator = Comparator(store, threshold=cfg.diff_threshold if threshold is None else threshold)
    try:
        result = comparator.compare(CompareRequest(test_id=test_id))
    except SnapdiffError as e:
        _print_error(e)
        sys.exit(1)

    table = Table(title=f"Comparison: {test_id}")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Dimensions", f"{result.width}x{result.height}")
    table.add_row("Differing pixels", str(result.diff_pixels))
    color = "green" if result.diff_pixels == 0 else "red"
    table.add_row("Difference", f"[{color}]{result.diff_percentage}%[/{color}]")
    table.add_row("Diff image", str(store.path_for("diff", test_id)))
    console.print(table)


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create a default configuration file."""
    config_path = Path(ctx.obj["config_path"])
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return
    ServiceConfig().save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nStart the API with:")
    console.print("  [blue]snapdiff serve[/blue]")


def _print_error(error: SnapdiffError) -> None:
    console.print(f"[red]{error.message}[/red]")
    if error.details:
        console.print(f"  {error.details}")
    for key, value in error.extra().items():
        console.print(f"  {key}: {value}")


if __name__ == "__main__":
    cli()
