"""stepstream CLI: Typer application with subcommands."""

import typer

from .serve_cmd import serve
from .run_cmd import run
from .status_cmd import status

app = typer.Typer(
    name="stepstream",
    help="Cancellable streaming step tasks over HTTP.",
    no_args_is_help=True,
)

app.command()(serve)
app.command()(run)
app.command()(status)


if __name__ == "__main__":
    app()
