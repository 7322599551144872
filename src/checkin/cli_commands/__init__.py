"""CLI command modules for the check-in agent."""

from checkin.cli_commands.config import config_app
from checkin.cli_commands.queue import queue_app
from checkin.cli_commands.scan import scan_app
from checkin.cli_commands.status import status_command

__all__ = ["config_app", "queue_app", "scan_app", "status_command"]
