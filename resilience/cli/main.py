"""Main CLI entry point for the resilience framework."""

import sys
import time
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import BaseModel, Field
from rich.console import Console
from rich.table import Table

from ..core.config import load_config
from ..core.errors import ResilienceError
from ..core.log import configure_logging, get_logger
from ..core.types import ResilienceConfig
from ..instances.instance import Instance
from ..instances.manager import InstanceManager


class GlobalCliOptions(BaseModel):
    """Global CLI options that can be used across all commands."""

    verbose: int = Field(0, description="Increase verbosity level")
    config_file: Optional[Path] = Field(None, description="Configuration file path")
    log_level: str = Field(
        "INFO", description="Framework logging level (DEBUG, INFO, WARNING, ERROR)"
    )


app = typer.Typer(
    name="resilience",
    help="ArangoDB test cluster orchestration",
    no_args_is_help=True,
    rich_markup_mode="markdown",
)
console = Console()
logger = get_logger(__name__)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="Increase verbosity level"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Framework logging level (DEBUG, INFO, WARNING, ERROR) - explicit level",
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
) -> None:
    """Start and inspect ArangoDB test clusters."""
    if verbose > 0 and log_level is not None:
        console.print("[red]Error: Cannot specify both --verbose and --log-level[/red]")
        raise typer.Exit(1)

    if log_level is None:
        resolved_log_level = (
            "DEBUG" if verbose >= 2 else "INFO" if verbose == 1 else "WARNING"
        )
    else:
        resolved_log_level = log_level

    cli_options = GlobalCliOptions(
        verbose=verbose,
        config_file=config_file,
        log_level=resolved_log_level,
    )
    ctx.ensure_object(dict)
    ctx.obj["cli_options"] = cli_options

    configure_logging(
        level=cli_options.log_level, enable_console=True, enable_json=False
    )


def _load(ctx: typer.Context) -> ResilienceConfig:
    options: GlobalCliOptions = ctx.obj["cli_options"]
    try:
        return load_config(config_file=options.config_file)
    except ResilienceError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)


def _instance_table(title: str, instances: List[Instance]) -> Table:
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("Endpoint", style="green")
    table.add_column("Status")
    for instance in instances:
        table.add_row(
            instance.name, instance.role.value, instance.endpoint, instance.status.value
        )
    return table


def _serve_until_interrupted(manager: InstanceManager) -> None:
    console.print("[yellow]Press Ctrl+C to shut down[/yellow]")
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    manager.cleanup()


def _abort_start(manager: InstanceManager) -> None:
    """Tear down a half-started cluster after Ctrl+C."""
    console.print("\n[yellow]Interrupted, shutting down...[/yellow]")
    manager.cleanup()
    raise typer.Exit(130)


@app.command()
def cluster(
    ctx: typer.Context,
    agents: int = typer.Option(1, "--agents", "-a", help="Number of agents"),
    coordinators: int = typer.Option(
        1, "--coordinators", "-c", help="Number of coordinators"
    ),
    dbservers: int = typer.Option(2, "--dbservers", "-d", help="Number of dbservers"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the cluster to become ready"
    ),
) -> None:
    """Start a cluster and keep it running until interrupted."""
    manager = InstanceManager.create(_load(ctx))
    try:
        endpoint = manager.start_cluster(agents, coordinators, dbservers, timeout=timeout)
    except ResilienceError as e:
        console.print(f"[red]Cluster start failed: {e}[/red]")
        manager.cleanup(retain=manager.config.retain_on_failure)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        _abort_start(manager)

    console.print(_instance_table(f"Cluster {manager.run_id}", manager.instances))
    console.print(f"Entry point: [bold green]{endpoint}[/bold green]")
    _serve_until_interrupted(manager)


@app.command()
def agency(
    ctx: typer.Context,
    size: int = typer.Option(1, "--size", "-s", help="Number of agents"),
    wait_for_sync: bool = typer.Option(
        False, "--wait-for-sync", help="Let agents sync their log to disk"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the agency to become ready"
    ),
) -> None:
    """Start an agency only and keep it running until interrupted."""
    manager = InstanceManager.create(_load(ctx))
    try:
        manager.start_agency(size, wait_for_sync=wait_for_sync)
        manager.wait_for_all_instances(timeout=timeout)
    except ResilienceError as e:
        console.print(f"[red]Agency start failed: {e}[/red]")
        manager.cleanup(retain=manager.config.retain_on_failure)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        _abort_start(manager)

    console.print(_instance_table(f"Agency {manager.run_id}", manager.instances))
    _serve_until_interrupted(manager)


@app.command()
def config(ctx: typer.Context) -> None:
    """Show current configuration."""
    current_config = _load(ctx)
    table = Table(title="Resilience Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Runner", current_config.runner_kind.value)
    if current_config.arango_basepath:
        table.add_row("ArangoDB Base Path", str(current_config.arango_basepath))
    if current_config.docker_image:
        table.add_row("Docker Image", current_config.docker_image)
    if current_config.arango_wrapper:
        table.add_row("Wrapper", current_config.arango_wrapper)
    table.add_row("Storage Engine", current_config.storage_engine)
    if current_config.temp_dir:
        table.add_row("Temp Directory", str(current_config.temp_dir))
    table.add_row("Logs Directory", str(current_config.logs_dir))
    table.add_row("Retain on Failure", str(current_config.retain_on_failure))
    table.add_row("First Port", str(current_config.ports.start_port))
    table.add_row(
        "Health Retry Interval", f"{current_config.timeouts.health_retry_interval}s"
    )
    table.add_row("Log Level", current_config.log_level)
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__

    table = Table(title="Resilience Version Information")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")
    table.add_row("Resilience Framework", __version__)
    try:
        import aiohttp

        table.add_row("aiohttp", aiohttp.__version__)
    except ImportError:
        table.add_row("aiohttp", "[red]Not installed[/red]")
    console.print(table)


def cli_main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except ResilienceError as e:
        logger.error("Error: %s", e)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
