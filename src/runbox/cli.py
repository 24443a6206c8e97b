"""CLI for runbox.

Provides a command-line interface using Typer for:
- Running a supervised container from a configuration file
- Inspecting, stopping and removing containers
- Pulling images and inspecting image references
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from runbox.core.config import load_config
from runbox.core.constants import DEFAULT_PULL_TIMEOUT_SECONDS, DEFAULT_REGISTRY
from runbox.core.exceptions import EngineError
from runbox.core.schemas import EngineConfig, RunConfig, RunResult, RunStatus
from runbox.engine.pool import EnginePool
from runbox.results.storage import ResultsStorage
from runbox.runners.container_runner import ContainerRunner
from runbox.utils.images import normalize_image_name, parse_registry
from runbox.utils.logging import setup_logging

app = typer.Typer(
    name="runbox",
    help="Supervised single-container task runner",
    add_completion=False,
)

console = Console()


def _open_runner(pool: EnginePool, engine_config: EngineConfig) -> ContainerRunner:
    """Build a runner on the pooled engine for this registry and user."""
    password = engine_config.password.get_secret_value() if engine_config.password else None
    try:
        engine = pool.get(engine_config.registry, engine_config.username, password)
    except (EngineError, ValueError) as e:
        console.print(f"[bold red]Cannot connect to the container engine: {e}[/]")
        raise typer.Exit(1) from e
    return ContainerRunner(
        engine,
        poll_interval_seconds=engine_config.poll_interval_seconds,
        pull_timeout_seconds=engine_config.pull_timeout_seconds,
    )


@app.command()
def run(
    config: Path = typer.Option(
        ..., "--config", "-c", help="Path to run configuration file (YAML/JSON)"
    ),
    output_dir: Path | None = typer.Option(
        None, "--output", "-o", help="Directory for the run result (overrides config)"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Logging level"),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write logs to file in addition to console"
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Output logs in JSON format (for programmatic parsing)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate config without running"),
) -> None:
    """Run a container described by a configuration file."""
    setup_logging(
        level=log_level, log_file=log_file, json_format=json_logs, rich_console=not json_logs
    )

    console.print(f"[bold blue]Loading configuration from {config}[/]")
    try:
        run_config = load_config(config)
    except Exception as e:
        console.print(f"[bold red]Error loading config: {e}[/]")
        raise typer.Exit(1) from e

    if output_dir is not None:
        run_config.results_dir = output_dir

    _show_config_summary(run_config)

    if dry_run:
        console.print("[bold green]Configuration is valid![/]")
        return

    request = run_config.request
    with EnginePool() as pool:
        runner = _open_runner(pool, run_config.engine)

        if run_config.pull_image and not runner.is_image_present(request.image):
            if not runner.pull_image(request.image):
                console.print(f"[bold red]Failed to pull image {request.image}[/]")
                raise typer.Exit(1)

        result = runner.run(request, remove_duplicate=run_config.remove_duplicate)

    _show_result(request.container_name, result)

    if run_config.results_dir is not None:
        path = ResultsStorage(run_config.results_dir).save(result, request.container_name)
        console.print(f"Result saved to {path}")

    if result.final_status != RunStatus.SUCCESS:
        raise typer.Exit(1)


@app.command()
def stop(
    name: str = typer.Argument(..., help="Container name"),
    registry: str = typer.Option(DEFAULT_REGISTRY, "--registry", help="Registry of the engine"),
) -> None:
    """Stop and remove a container."""
    setup_logging(level="INFO")
    with EnginePool() as pool:
        runner = _open_runner(pool, EngineConfig(registry=registry))
        removed = runner.stop_and_remove(name)

    if removed:
        console.print(f"[bold green]Container {name} is gone[/]")
    else:
        console.print(f"[bold red]Container {name} is still present[/]")
        raise typer.Exit(1)


@app.command()
def status(name: str = typer.Argument(..., help="Container name")) -> None:
    """Show the status of a container."""
    with EnginePool() as pool:
        runner = _open_runner(pool, EngineConfig())
        current = runner.get_status(name)
        duration = runner.get_execution_duration(name)

    console.print(f"{name}: [bold]{current.value}[/]")
    if duration is not None:
        console.print(f"Execution duration: {duration.total_seconds():.3f}s")


@app.command()
def pull(
    image: str = typer.Argument(..., help="Image reference with tag (e.g. alpine:3.19)"),
    timeout: int = typer.Option(
        DEFAULT_PULL_TIMEOUT_SECONDS, "--timeout", "-t", help="Pull timeout in seconds"
    ),
    username: str | None = typer.Option(None, "--username", "-u", help="Registry user"),
    password: str | None = typer.Option(
        None, "--password", "-p", envvar="RUNBOX_REGISTRY_PASSWORD", help="Registry password"
    ),
) -> None:
    """Pull an image from its registry."""
    setup_logging(level="INFO")
    try:
        registry = parse_registry(image)
    except ValueError as e:
        console.print(f"[bold red]{e}[/]")
        raise typer.Exit(1) from e

    engine_config = EngineConfig(registry=registry, username=username, password=password)
    with EnginePool() as pool:
        runner = _open_runner(pool, engine_config)
        pulled = runner.pull_image(image, timeout=timeout)

    if not pulled:
        console.print(f"[bold red]Failed to pull {image}[/]")
        raise typer.Exit(1)
    console.print(f"[bold green]Pulled {image}[/]")


@app.command()
def normalize(image: str = typer.Argument(..., help="Image reference")) -> None:
    """Print an image reference without default registry/library prefixes."""
    console.print(normalize_image_name(image), highlight=False)


@app.command()
def registry(image: str = typer.Argument(..., help="Image reference")) -> None:
    """Print the registry an image reference is pulled from."""
    try:
        console.print(parse_registry(image), highlight=False)
    except ValueError as e:
        console.print(f"[bold red]{e}[/]")
        raise typer.Exit(1) from e


@app.command()
def init_config(
    output: Path = typer.Option(
        Path("run.yaml"), "--output", "-o", help="Output configuration file"
    ),
) -> None:
    """Generate a sample configuration file."""
    sample_config = """\
# runbox configuration
engine:
  registry: docker.io
  # username: me
  # password: secret
  poll_interval_seconds: 1
  pull_timeout_seconds: 60

pull_image: true
remove_duplicate: true
results_dir: ./results

request:
  container_name: hello-task
  image: alpine:latest
  cmd: "sh -c 'echo hello && sleep 2'"
  env:
    - GREETING=hello
  working_dir: /tmp
  # <= 0 leaves the container running (detached)
  max_execution_time_ms: 60000
  # NONE, LEGACY or NATIVE
  driver_mode: NONE
  display_logs: true
  host_config:
    network_mode: bridge
    binds: []
    devices: []
"""
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(sample_config)
    console.print(f"[bold green]Sample configuration written to {output}[/]")


def _show_config_summary(config: RunConfig) -> None:
    """Display a summary of the run configuration."""
    request = config.request
    table = Table(title="Run Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Container", request.container_name)
    table.add_row("Image", request.image)
    table.add_row("Command", request.cmd or "-")
    table.add_row(
        "Budget",
        "detached" if request.is_detached else f"{request.max_execution_time_ms} ms",
    )
    table.add_row("Driver Mode", request.driver_mode.value)
    table.add_row("Devices", ", ".join(request.devices) or "-")
    table.add_row("Registry", config.engine.registry)
    table.add_row("Results Dir", str(config.results_dir) if config.results_dir else "-")

    console.print(table)


def _show_result(name: str, result: RunResult) -> None:
    """Display the outcome of a run."""
    colors = {RunStatus.SUCCESS: "green", RunStatus.FAILED: "red", RunStatus.TIMEOUT: "yellow"}
    color = colors[result.final_status]

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Status", f"[{color}]{result.final_status.value}[/]")
    table.add_row("Exit Code", "N/A" if result.exit_code == -1 else str(result.exit_code))
    table.add_row(
        "Duration",
        f"{result.execution_duration.total_seconds():.3f}s"
        if result.execution_duration is not None
        else "N/A",
    )
    if result.detached:
        table.add_row("Mode", "detached")
    if result.stdout:
        table.add_row("", "")
        table.add_row("[dim]stdout[/]", result.stdout.rstrip()[-2000:])
    if result.stderr:
        table.add_row("[dim]stderr[/]", result.stderr.rstrip()[-2000:])

    console.print(Panel(table, title=f"[bold]{name}[/]", border_style=color))


if __name__ == "__main__":
    app()
