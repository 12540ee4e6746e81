"""stepstream run: Start a task on a server and follow its progress."""

import asyncio

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn, TimeElapsedColumn

from ..client.bridge import TaskOutcome
from ..client.console import TaskConsole
from ..client.transport import HttpConnector
from ..core.config import load_defaults
from ..core.constants import LOG_ERROR, LOG_INFO, LOG_PROGRESS, LOG_SUCCESS, LOG_WARNING
from ..core.logging_utils import setup_logging

console = Console()

LOG_STYLES = {
    LOG_INFO: ("cyan", "ℹ"),
    LOG_PROGRESS: ("blue", "⏳"),
    LOG_SUCCESS: ("green", "✓"),
    LOG_ERROR: ("red", "✗"),
    LOG_WARNING: ("yellow", "⚠"),
}


def run(
    url: str = typer.Option(
        None,
        "--url", "-u",
        help="Server base URL (default from config)",
    ),
    steps: int = typer.Option(
        None,
        "--steps", "-n",
        min=1,
        help="Number of steps (default from server config)",
    ),
    cancel_after: int = typer.Option(
        None,
        "--cancel-after",
        min=1,
        help="Cancel once progress for this step has been received",
    ),
    graceful: bool = typer.Option(
        False,
        "--graceful",
        help="Cancel by asking the server to stop instead of aborting the connection",
    ),
) -> None:
    """Run one task, showing a progress bar and the task log."""
    config = load_defaults()
    setup_logging(config.get("logging", {}).get("level"), console=console)
    client_cfg = config.get("client", {})
    base_url = url or client_cfg.get("base_url", "http://127.0.0.1:8000")

    connector = HttpConnector(base_url, total_steps=steps)
    outcome = asyncio.run(_follow(
        connector, cancel_after, graceful,
        stop_timeout=float(client_cfg.get("stop_timeout", 5.0)),
    ))

    if outcome == TaskOutcome.FAILED:
        raise typer.Exit(1)


async def _follow(
    connector: HttpConnector,
    cancel_after: int | None,
    graceful: bool,
    stop_timeout: float,
) -> TaskOutcome:
    """Drive a TaskConsole and render it until the task finishes."""
    printed = 0
    triggered = False
    pending: list[asyncio.Task] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task("Task", total=100)

        def render(task_console: TaskConsole) -> None:
            nonlocal printed, triggered
            logs = task_console.logs
            for entry in logs[printed:]:
                style, icon = LOG_STYLES.get(entry.type, ("white", "•"))
                progress.console.print(f"[dim]{entry.timestamp}[/dim] [{style}]{icon} {entry.message}[/{style}]")
            printed = len(logs)
            progress.update(bar, completed=task_console.progress)

            handle = task_console.bridge.handle
            if cancel_after and not triggered and handle is not None and handle.last_step >= cancel_after:
                triggered = True
                if graceful:
                    pending.append(asyncio.ensure_future(task_console.stop_task()))
                else:
                    task_console.cancel_task()

        task_console = TaskConsole(connector, on_change=render, stop_timeout=stop_timeout)
        outcome = await task_console.start_task()
        if pending:
            await asyncio.gather(*pending)

    style = "green" if outcome == TaskOutcome.COMPLETED else ("red" if outcome == TaskOutcome.FAILED else "yellow")
    console.print(f"\n[{style}]Outcome: {outcome.value}[/{style}]")
    return outcome
