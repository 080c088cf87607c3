"""Configuration management CLI commands."""

import json

import typer
import yaml

from photoqueue.config import get_settings

config_app = typer.Typer(
    name="config",
    help="Configuration management - view settings and default attributes.",
    no_args_is_help=True,
)

SETTABLE_KEYS = {
    "max_retries",
    "sync_interval_ms",
    "server_url",
    "upload_timeout",
    "connectivity_poll_interval",
    "data_dir",
    "log_level",
    "agent_id",
}


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current configuration."""
    settings = get_settings()

    config_data = {
        "max_retries": settings.max_retries,
        "sync_interval_ms": settings.sync_interval_ms,
        "server_url": settings.server_url,
        "upload_timeout": settings.upload_timeout,
        "connectivity_poll_interval": settings.connectivity_poll_interval,
        "data_dir": str(settings.data_path),
        "attributes_file": str(settings.attributes_path),
        "log_level": settings.log_level,
        "agent_id": settings.agent_id,
    }

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
    else:
        typer.echo("")
        typer.echo("photoqueue Configuration")
        typer.echo("------------------------")
        typer.echo(f"Max retries: {settings.max_retries}")
        typer.echo(f"Sync interval: {settings.sync_interval_ms}ms")
        typer.echo(f"Server URL: {settings.server_url}")
        typer.echo(f"Upload timeout: {settings.upload_timeout}s")
        typer.echo(f"Connectivity poll: {settings.connectivity_poll_interval}s")
        typer.echo(f"Data directory: {settings.data_path}")
        typer.echo(f"Attributes file: {settings.attributes_path}")
        typer.echo(f"Log level: {settings.log_level}")
        typer.echo(f"Agent ID: {settings.agent_id or '(none)'}")
        typer.echo("")
        typer.echo("Set values using environment variables with PHOTOQUEUE_ prefix")
        typer.echo("Example: PHOTOQUEUE_MAX_RETRIES=5")


@config_app.command(name="set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key to set"),
    value: str = typer.Argument(..., help="Value to set"),
) -> None:
    """Show how to set a configuration value.

    Settings are read once at startup from the environment, so this command
    prints the variable to export rather than changing a running agent.
    """
    if key not in SETTABLE_KEYS:
        typer.echo(f"Unknown key: {key}")
        typer.echo(f"Valid keys: {', '.join(sorted(SETTABLE_KEYS))}")
        raise typer.Exit(1)

    env_key = f"PHOTOQUEUE_{key.upper()}"
    typer.echo(f"To set {key}={value}, add to your environment:")
    typer.echo(f"  export {env_key}={value}")
    typer.echo("")
    typer.echo("Or add to .env in the agent's working directory:")
    typer.echo(f"  {env_key}={value}")


attributes_app = typer.Typer(
    name="attributes",
    help="Manage default owner attributes attached to queued files.",
    no_args_is_help=True,
)
config_app.add_typer(attributes_app, name="attributes")


def _read_attributes_file() -> dict:
    settings = get_settings()
    if not settings.attributes_path.exists():
        return {}
    try:
        with open(settings.attributes_path) as f:
            attributes = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        typer.echo(f"Error reading attributes: {e}")
        raise typer.Exit(1)
    if not isinstance(attributes, dict):
        typer.echo(f"Attributes file is not a mapping: {settings.attributes_path}")
        raise typer.Exit(1)
    return attributes


def _write_attributes_file(attributes: dict) -> None:
    settings = get_settings()
    settings.attributes_path.parent.mkdir(parents=True, exist_ok=True)
    with open(settings.attributes_path, "w") as f:
        yaml.dump(attributes, f, default_flow_style=False)
    typer.echo(f"Saved to {settings.attributes_path}")


@attributes_app.command(name="list")
def list_attributes(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List default owner attributes."""
    settings = get_settings()
    attributes = settings.load_default_attributes()

    if output_json:
        typer.echo(json.dumps(attributes, indent=2))
        return

    typer.echo("")
    typer.echo("Default Attributes")
    typer.echo("------------------")
    if not attributes:
        typer.echo("  (none)")
    for key in sorted(attributes):
        typer.echo(f"  {key}: {attributes[key]}")
    typer.echo("")
    typer.echo(f"File: {settings.attributes_path}")


@attributes_app.command(name="set")
def set_attribute(
    key: str = typer.Argument(..., help="Attribute name"),
    value: str = typer.Argument(..., help="Attribute value"),
) -> None:
    """Set a default owner attribute."""
    attributes = _read_attributes_file()
    attributes[key] = value
    _write_attributes_file(attributes)


@attributes_app.command()
def remove(key: str = typer.Argument(..., help="Attribute name")) -> None:
    """Remove a default owner attribute."""
    attributes = _read_attributes_file()
    if key not in attributes:
        typer.echo(f"Attribute not found: {key}")
        return

    del attributes[key]
    _write_attributes_file(attributes)
