"""CLI command modules for the photoqueue agent."""

from photoqueue.cli_commands.agent import agent_app
from photoqueue.cli_commands.config import config_app
from photoqueue.cli_commands.queue import queue_app
from photoqueue.cli_commands.status import status_command

__all__ = ["agent_app", "config_app", "queue_app", "status_command"]
