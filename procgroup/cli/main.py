"""procgroup CLI — run command lines side by side in one process group.

`procgroup run "make -C a" "make -C b" --limit 2` runs both commands, at most
two at a time, then prints how each one exited. Ctrl-C interrupts the whole
group and waits for every child before exiting.
"""

from __future__ import annotations

import signal
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from procgroup.config import settings
from procgroup.exceptions import ConfigurationError
from procgroup.group import Group
from procgroup.logging_setup import setup_logging
from procgroup.terminal import ControllingTerminal
from procgroup.types import ExitStatus

app = typer.Typer(
    name="procgroup",
    help="procgroup -- run many commands in one process group.",
    no_args_is_help=True,
)
console = Console()
logger = structlog.get_logger()


def describe_status(status: ExitStatus | None) -> str:
    if status is None:
        return "[yellow]not run[/yellow]"
    if status == 0:
        return "[green]ok[/green]"
    if status < 0:
        try:
            name = signal.Signals(-status).name
        except ValueError:
            name = f"signal {-status}"
        return f"[bold red]killed by {name}[/bold red]"
    return f"[red]exit {status}[/red]"


@app.command("run")
def run_commands(
    commands: list[str] = typer.Argument(help="Command lines to run"),
    limit: Optional[int] = typer.Option(
        settings.default_limit, "--limit", "-j", help="Max commands running at once",
    ),
    foreground: bool = typer.Option(
        False, "--foreground", help="Give the terminal to the commands while they run",
    ),
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Log level"),
):
    """Run command lines concurrently and report their exit status."""
    setup_logging(log_level)

    try:
        group = Group(limit=limit)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)

    terminal = ControllingTerminal.open() if foreground else None
    group.terminal = terminal
    results: dict[int, ExitStatus] = {}

    for index, line in enumerate(commands):
        def _completed(status: ExitStatus, index: int = index, line: str = line) -> None:
            results[index] = status
            logger.info("command.completed", command=line, status=status)

        group.run(line, on_complete=_completed, foreground=terminal is not None)

    interrupted = False
    try:
        group.wait()
    except KeyboardInterrupt:
        interrupted = True
        logger.warning("group.interrupted", commands=len(commands), completed=len(results))
    except OSError as e:
        console.print(f"[red]Error: could not start command: {e}[/red]")
        raise typer.Exit(127)
    finally:
        if terminal is not None:
            terminal.restore()
            terminal.close()

    table = Table(title="Commands")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Command", style="cyan")
    table.add_column("Status")
    for index, line in enumerate(commands):
        table.add_row(str(index + 1), line, describe_status(results.get(index)))
    console.print(table)

    if interrupted:
        raise typer.Exit(130)
    if len(results) < len(commands) or any(results.values()):
        raise typer.Exit(1)


@app.command("version")
def version_cmd():
    """Show procgroup version."""
    from procgroup import __version__
    console.print(f"procgroup v{__version__}")
