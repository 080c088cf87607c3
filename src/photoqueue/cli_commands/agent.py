"""Agent process management CLI commands."""

import asyncio
import json
import os
import signal
from pathlib import Path

import typer

from photoqueue.config import Settings, get_settings
from photoqueue.logging import setup_logging

agent_app = typer.Typer(
    name="agent",
    help="Agent management - start and stop the upload agent.",
    no_args_is_help=True,
)


def pid_file(settings: Settings) -> Path:
    """PID file of the running agent, kept next to the queue database."""
    return settings.data_path / "agent.pid"


def get_running_pid(settings: Settings) -> int | None:
    """Get the PID of the running agent, if any."""
    path = pid_file(settings)
    if not path.exists():
        return None

    try:
        pid = int(path.read_text().strip())
        # Check if process exists
        os.kill(pid, 0)
        return pid
    except (ValueError, OSError):
        # Invalid PID or process doesn't exist
        path.unlink(missing_ok=True)
        return None


def _write_pid(settings: Settings) -> None:
    path = pid_file(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(os.getpid()))


def _cleanup_pid(settings: Settings) -> None:
    pid_file(settings).unlink(missing_ok=True)


def output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


async def _run_agent(settings: Settings) -> int:
    """Run the upload agent until SIGINT or SIGTERM.

    Returns:
        Number of artifacts still pending at shutdown
    """
    # Imported here to keep CLI startup fast
    from photoqueue.engine import UploadAgent

    agent = UploadAgent(settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    await agent.start()
    try:
        await stop_event.wait()
    finally:
        await agent.stop()
    return agent.pending_count


@agent_app.command()
def start(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Start the upload agent.

    Delivers queued artifacts to the server, retrying while offline.
    Press Ctrl+C to stop; the queue is kept on disk.
    """
    settings = get_settings()

    existing_pid = get_running_pid(settings)
    if existing_pid:
        output(
            {"status": "error", "message": "Agent already running", "pid": existing_pid},
            output_json,
            f"Agent already running (PID: {existing_pid}). Use 'photoqueue agent stop' first.",
        )
        raise typer.Exit(1)

    setup_logging(settings.log_level, log_file=settings.log_file, agent_id=settings.agent_id)

    output(
        {"status": "starting", "pid": os.getpid()},
        output_json,
        f"Starting upload agent (server: {settings.server_url})... Press Ctrl+C to stop.",
    )

    _write_pid(settings)
    try:
        pending = asyncio.run(_run_agent(settings))
    finally:
        _cleanup_pid(settings)

    output(
        {"status": "stopped", "pending": pending},
        output_json,
        f"Agent stopped. {pending} artifact(s) still queued.",
    )


@agent_app.command()
def stop(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Stop the running upload agent."""
    settings = get_settings()
    pid = get_running_pid(settings)

    if not pid:
        output(
            {"status": "not_running"},
            output_json,
            "No agent is currently running.",
        )
        return

    try:
        os.kill(pid, signal.SIGTERM)
        output(
            {"status": "stopped", "pid": pid},
            output_json,
            f"Stopping upload agent (PID: {pid})...",
        )
    except OSError as e:
        output(
            {"status": "error", "message": str(e)},
            output_json,
            f"Failed to stop agent: {e}",
        )
        raise typer.Exit(1)
