"""Queue inspection and maintenance CLI commands.

Mutating commands refuse to run while an agent is running: the agent is
the single owner of the queue and rewrites the whole stored state on each
change.
"""

import json
from pathlib import Path

import typer

from photoqueue.cli_commands.agent import get_running_pid, output
from photoqueue.config import Settings, get_settings
from photoqueue.errors import PersistenceError
from photoqueue.sync import SqliteStore, UploadQueue

queue_app = typer.Typer(
    name="queue",
    help="Queue management - add, list and retry queued artifacts.",
    no_args_is_help=True,
)


def parse_attributes(pairs: list[str]) -> dict[str, str]:
    """Parse key=value pairs into an attributes dict.

    Raises:
        typer.BadParameter: If a pair has no '=' or an empty key
    """
    attributes = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got: {pair}")
        attributes[key] = value
    return attributes


def _require_stopped_agent(settings: Settings, as_json: bool) -> None:
    pid = get_running_pid(settings)
    if pid:
        output(
            {"status": "error", "message": "Agent is running", "pid": pid},
            as_json,
            f"Agent is running (PID: {pid}). Stop it with 'photoqueue agent stop' first.",
        )
        raise typer.Exit(1)


@queue_app.command()
def add(
    files: list[Path] = typer.Argument(..., help="Files to queue for upload"),
    attr: list[str] = typer.Option(
        [],
        "--attr",
        "-a",
        help="Owner attribute as key=value (repeatable)",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Queue files for upload.

    Attributes from the attributes file are applied first, then --attr values.
    """
    settings = get_settings()
    _require_stopped_agent(settings, output_json)

    extra_attributes = parse_attributes(attr)
    for filepath in files:
        if not filepath.is_file():
            output(
                {"status": "error", "message": f"File not found: {filepath}"},
                output_json,
                f"File not found: {filepath}",
            )
            raise typer.Exit(1)

    store = SqliteStore(settings.queue_db_path)
    queue = UploadQueue(store, max_retries=settings.max_retries)
    added = []
    try:
        for filepath in files:
            attributes = {
                **settings.load_default_attributes(),
                "filename": filepath.name,
                **extra_attributes,
            }
            artifact_id = queue.enqueue(filepath.read_bytes(), attributes)
            added.append({"id": artifact_id, "file": str(filepath)})
    except PersistenceError as e:
        output(
            {"status": "error", "message": str(e), "added": added},
            output_json,
            f"Failed to save queue: {e}",
        )
        raise typer.Exit(1)
    finally:
        store.close()

    if output_json:
        output({"status": "queued", "added": added, "pending": queue.size()}, True, "")
    else:
        for item in added:
            typer.echo(f"Queued {item['file']} as {item['id']}")
        typer.echo(f"{queue.size()} artifact(s) pending.")


@queue_app.command(name="list")
def list_queue(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List queued artifacts in delivery order."""
    settings = get_settings()
    artifacts = []
    if settings.queue_db_path.exists():
        store = SqliteStore(settings.queue_db_path)
        try:
            artifacts = store.load()
        finally:
            store.close()

    items = [
        {
            "id": artifact.id,
            "enqueued_at": artifact.enqueued_at.isoformat(),
            "retry_count": artifact.retry_count,
            "size": len(artifact.payload),
            "attributes": artifact.attributes,
        }
        for artifact in artifacts
    ]

    if output_json:
        typer.echo(json.dumps({"pending": len(items), "items": items}))
        return

    if not items:
        typer.echo("Queue is empty.")
        return

    typer.echo("")
    for position, item in enumerate(items, 1):
        retry = f"  retry {item['retry_count']}" if item["retry_count"] else ""
        typer.echo(f"{position:3}. {item['id']}  {item['enqueued_at']}  {item['size']} bytes{retry}")
    typer.echo("")


@queue_app.command(name="retry-all")
def retry_all(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Reset retry counts so every queued artifact gets a fresh set of attempts."""
    settings = get_settings()
    _require_stopped_agent(settings, output_json)

    store = SqliteStore(settings.queue_db_path)
    try:
        queue = UploadQueue(store, max_retries=settings.max_retries)
        reset = queue.reset_retries()
    except PersistenceError as e:
        output(
            {"status": "error", "message": str(e)},
            output_json,
            f"Failed to save queue: {e}",
        )
        raise typer.Exit(1)
    finally:
        store.close()

    output(
        {"status": "reset", "reset": reset, "pending": queue.size()},
        output_json,
        f"Reset retry counts on {reset} of {queue.size()} queued artifact(s).",
    )
