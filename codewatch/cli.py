"""Command-line interface for codewatch using Typer.

Commands:
- run: Watch configured filesystems and dispatch AI! directives
- scan: Print the directives found in files (no agent is invoked)
- init: Write a default configuration file
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from codewatch.core.config import Config, create_default_config, load_config_or_default
from codewatch.core.errors import ConfigError, WatchError
from codewatch.core.logging_setup import init_logging
from codewatch.core.scanner import scan as scan_content
from codewatch.core.service import CodeWatchService

console = Console()

app = typer.Typer(
    name="codewatch",
    help="codewatch - dispatch AI! comments in your code to a headless agent",
    add_completion=False,
)

CONFIG_OPTION = typer.Option(
    "--config",
    "-c",
    help="Path to configuration file",
)
CONCURRENCY_OPTION = typer.Option(
    "--concurrency",
    help="Override the number of concurrent agent sessions",
    min=1,
)
VERBOSITY_OPTION = typer.Option(
    "--verbosity",
    "-v",
    help="Override console verbosity (debug|info|warning|error)",
)
DRY_RUN_OPTION = typer.Option(
    "--dry-run",
    help="Validate config and exit",
)
JSON_OPTION = typer.Option(
    "--json",
    help="Print triggers as JSON lines",
)


async def _serve(config: Config) -> None:
    """Run the service until SIGINT/SIGTERM."""
    service = CodeWatchService(config)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; Ctrl+C still raises
            pass
    await service.run_until_stopped(stop)


@app.command()
def run(
    config_path: Annotated[Path | None, CONFIG_OPTION] = Path("codewatch.toml"),
    concurrency: Annotated[int | None, CONCURRENCY_OPTION] = None,
    verbosity: Annotated[str | None, VERBOSITY_OPTION] = None,
    dry_run: Annotated[bool, DRY_RUN_OPTION] = False,
) -> None:
    """Watch configured filesystems and dispatch AI! directives."""
    try:
        config = load_config_or_default(config_path)

        if concurrency is not None:
            config.codewatch.concurrency = concurrency
        if verbosity is not None:
            if verbosity not in ("debug", "info", "warning", "error"):
                raise ConfigError(f"Invalid verbosity: {verbosity}")
            config.codewatch.console_verbosity = verbosity  # type: ignore[assignment]

        init_logging(config.codewatch.console_verbosity, config.codewatch.log_file or None)

        console.print(f"[cyan]Configuration loaded from: {config_path or 'defaults'}[/cyan]")

        if dry_run:
            console.print("[yellow]Dry-run mode: validating only[/yellow]")
            console.print(json.dumps(config.model_dump(), indent=2))
            return

        if not config.filesystems:
            console.print("[red]No filesystems configured. Nothing to watch.[/red]")
            sys.exit(1)

        for name, agent in config.agents.items():
            if not agent.command:
                console.print(f"[yellow]Agent '{name}' has no command configured[/yellow]")

        console.print(
            f"[bold green]codewatch starting[/bold green] "
            f"({len(config.filesystems)} filesystem(s), concurrency {config.codewatch.concurrency})"
        )
        asyncio.run(_serve(config))

    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(2)
    except WatchError as e:
        console.print(f"[red]Failed to start: {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")


@app.command()
def scan(
    files: Annotated[list[Path], typer.Argument(help="Files to scan")],
    as_json: Annotated[bool, JSON_OPTION] = False,
) -> None:
    """Print the AI directives found in files."""
    table = Table("Location", "Kind", "Instruction")
    found = 0
    for path in files:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            console.print(f"[red]Cannot read {path}: {e}[/red]")
            continue
        for trigger in scan_content(str(path), content):
            found += 1
            if as_json:
                print(json.dumps(trigger.to_dict(), separators=(",", ":")))
            else:
                table.add_row(trigger.location, trigger.kind.value, trigger.instruction_text)

    if as_json:
        return
    if found:
        console.print(table)
    else:
        console.print("[dim]No AI directives found[/dim]")


@app.command()
def init(
    path: Annotated[Path, typer.Argument(help="Config file to create")] = Path("codewatch.toml"),
) -> None:
    """Write a default configuration file."""
    try:
        create_default_config(path)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    console.print(f"[green]Wrote {path}[/green]")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
