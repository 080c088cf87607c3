"""Status command for the photoqueue CLI."""

import json
from datetime import datetime, timezone

import typer

from photoqueue.cli_commands.agent import get_running_pid
from photoqueue.config import get_settings
from photoqueue.sync import QueuedArtifact, SqliteStore


def _load_queue() -> list[QueuedArtifact]:
    """Read the persisted queue without taking ownership of it."""
    settings = get_settings()
    if not settings.queue_db_path.exists():
        return []

    store = SqliteStore(settings.queue_db_path)
    try:
        return store.load()
    finally:
        store.close()


def _format_time_ago(timestamp: datetime | None) -> str:
    """Format a timestamp as 'X minutes ago' style string."""
    if timestamp is None:
        return "Never"

    diff = datetime.now(timezone.utc) - timestamp

    seconds = max(int(diff.total_seconds()), 0)
    if seconds < 60:
        return f"{seconds} seconds ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show agent status.

    Displays whether the agent is running and how much work is queued.
    """
    settings = get_settings()
    pid = get_running_pid(settings)
    is_running = pid is not None

    artifacts = _load_queue()
    retrying = sum(1 for artifact in artifacts if artifact.retry_count)
    oldest = min((artifact.enqueued_at for artifact in artifacts), default=None)

    status_data = {
        "running": is_running,
        "state": "active" if is_running else "stopped",
        "pid": pid,
        "queue_pending": len(artifacts),
        "queue_retrying": retrying,
        "oldest_enqueued_at": oldest.isoformat() if oldest else None,
        "max_retries": settings.max_retries,
    }

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("photoqueue Agent Status")
    typer.echo("-----------------------")

    if is_running:
        typer.echo("State: Active (syncing)")
        typer.echo(f"PID: {pid}")
    else:
        typer.echo("State: Not running")

    typer.echo(f"Queue: {len(artifacts)} pending uploads")
    if retrying:
        typer.echo(f"Retrying: {retrying} uploads (max {settings.max_retries} attempts)")
    if artifacts:
        typer.echo(f"Oldest: {_format_time_ago(oldest)}")
    typer.echo("")

    if not is_running:
        typer.echo("Start the agent with: photoqueue agent start")
