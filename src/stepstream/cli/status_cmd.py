"""stepstream status: Show live tasks on a server."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from ..client.transport import HttpConnector
from ..core.config import load_defaults
from ..core.errors import TransportError

console = Console()


def status(
    url: str = typer.Option(
        None,
        "--url", "-u",
        help="Server base URL (default from config)",
    ),
) -> None:
    """List the tasks currently streaming on a stepstream server."""
    base_url = url or load_defaults().get("client", {}).get("base_url", "http://127.0.0.1:8000")
    connector = HttpConnector(base_url)

    try:
        tasks = asyncio.run(connector.list_tasks())
    except TransportError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not tasks:
        console.print("[dim]No live tasks.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Task", style="cyan")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Age")

    for task in tasks:
        styled = "[yellow]cancelling[/yellow]" if task["cancelled"] else "[green]running[/green]"
        table.add_row(
            task["task_id"],
            f"{task['current_step']}/{task['total_steps']}",
            styled,
            f"{task['age_s']:.1f}s",
        )

    console.print(table)
