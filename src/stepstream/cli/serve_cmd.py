"""stepstream serve: Start the task server."""

import typer
from rich.console import Console

from ..core.config import load_defaults
from ..core.logging_utils import setup_logging

console = Console()


def serve(
    port: int = typer.Option(
        None,
        "--port",
        help="HTTP port (default from config)",
    ),
    host: str = typer.Option(
        None,
        "--host",
        help="Host to bind to (default from config)",
    ),
) -> None:
    """Start the stepstream server (FastAPI + SSE)."""
    import uvicorn

    config = load_defaults()
    server_cfg = config.get("server", {})
    host = host or server_cfg.get("host", "127.0.0.1")
    port = port or server_cfg.get("port", 8000)
    setup_logging(config.get("logging", {}).get("level"))

    task_cfg = config.get("task", {})
    console.print("[bold]Starting stepstream server[/bold]")
    console.print(f"URL: http://{host}:{port}/api/slow")
    console.print(f"Steps: {task_cfg.get('total_steps')} x {task_cfg.get('step_duration')}s")
    console.print()

    uvicorn.run(
        "stepstream.web.app:app",
        host=host,
        port=port,
        reload=False,
        log_config=None,
    )
