"""Status command for the check-in CLI."""

import json

import typer

from checkin.config import Settings, get_settings
from checkin.exceptions import PersistenceError
from checkin.sync import PendingQueue, open_store


def _get_pending_count(settings: Settings) -> int:
    """Count scans waiting in the durable queue.

    Raises:
        PersistenceError: If the store cannot be read
    """
    if not settings.store_path.exists():
        return 0

    store = open_store(settings.store_backend, settings.store_path)
    try:
        return len(PendingQueue(store))
    finally:
        store.close()


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show station status.

    Displays the number of scans waiting to be synced and where they are
    delivered.
    """
    settings = get_settings()

    error = None
    try:
        pending = _get_pending_count(settings)
    except PersistenceError as e:
        pending = None
        error = str(e)

    status_data = {
        "pending": pending,
        "collector_url": settings.collector_url,
        "store": str(settings.store_path),
        "store_backend": settings.store_backend,
        "error": error,
    }

    if output_json:
        typer.echo(json.dumps(status_data))
    else:
        typer.echo("")
        typer.echo("Check-in Station Status")
        typer.echo("-----------------------")
        typer.echo(f"Collector: {settings.collector_url}")
        typer.echo(f"Store: {settings.store_path} ({settings.store_backend})")
        if error:
            typer.echo(f"Queue: unreadable ({error})")
        else:
            typer.echo(f"Queue: {pending} scans pending sync")
        typer.echo("")

        if pending:
            typer.echo("Sync now with: checkin queue sync")

    if error:
        raise typer.Exit(1)
