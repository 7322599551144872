"""Check-in CLI - command-line interface for the scanning station."""

import typer

from checkin import __version__
from checkin.cli_commands.config import config_app
from checkin.cli_commands.queue import queue_app
from checkin.cli_commands.scan import scan_app
from checkin.cli_commands.status import status_command

app = typer.Typer(
    name="checkin",
    help="Check-in agent - scan attendee QR codes and sync attendance, online or offline.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(scan_app, name="scan")
app.add_typer(queue_app, name="queue")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"checkin-agent {__version__}")
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
    """Check-in agent - QR attendance scanning."""
    pass


app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
