"""photoqueue CLI - command-line interface for the upload agent."""

import typer

from photoqueue import __version__
from photoqueue.cli_commands.agent import agent_app
from photoqueue.cli_commands.config import config_app
from photoqueue.cli_commands.queue import queue_app
from photoqueue.cli_commands.status import status_command

app = typer.Typer(
    name="photoqueue",
    help="photoqueue - offline-durable upload queue for captured photos.",
    no_args_is_help=True,
)

app.add_typer(agent_app, name="agent")
app.add_typer(queue_app, name="queue")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"photoqueue {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """photoqueue - offline-durable upload queue."""
    pass


app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
