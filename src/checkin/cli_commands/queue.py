"""Pending queue CLI commands."""

import asyncio
import json

import typer

from checkin.config import Settings, get_settings
from checkin.exceptions import PersistenceError
from checkin.logging import setup_logging
from checkin.sync import PendingQueue, open_store

queue_app = typer.Typer(
    name="queue",
    help="Offline queue - inspect and sync scans waiting for delivery.",
    no_args_is_help=True,
)


def _fail(message: str, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps({"status": "error", "message": message}))
    else:
        typer.echo(f"Error: {message}")
    raise typer.Exit(1)


@queue_app.command(name="list")
def list_pending(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List scans waiting for delivery, oldest first."""
    settings = get_settings()

    records = []
    # Listing must not create a store on a fresh station
    if settings.store_path.exists():
        try:
            store = open_store(settings.store_backend, settings.store_path)
            try:
                records = PendingQueue(store).drainable()
            finally:
                store.close()
        except PersistenceError as e:
            _fail(str(e), output_json)
            return

    if output_json:
        typer.echo(json.dumps([record.to_payload() for record in records], indent=2))
        return

    if not records:
        typer.echo("No scans pending.")
        return

    typer.echo(f"{len(records)} scans pending:")
    for record in records:
        typer.echo(
            f"  {record.scanned_at}  event={record.event_id or '-'}  lead={record.lead_id or '-'}"
        )


async def _sync_once(settings: Settings) -> dict:
    from checkin.engine import CheckinOrchestrator

    orchestrator = CheckinOrchestrator(settings)
    pending_before = orchestrator.queue_size
    # start() drains recovered scans when the collector is reachable
    await orchestrator.start(scan=False)
    try:
        online = orchestrator.connectivity.is_online()
        return {
            "status": "synced" if online else "offline",
            "pending_before": pending_before,
            "remaining": orchestrator.queue_size,
        }
    finally:
        await orchestrator.stop()


@queue_app.command()
def sync(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Deliver queued scans to the collector now."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.station_id)

    try:
        result = asyncio.run(_sync_once(settings))
    except PersistenceError as e:
        _fail(str(e), output_json)
        return

    if output_json:
        typer.echo(json.dumps(result))
    elif result["status"] == "offline":
        typer.echo(f"Collector unreachable; {result['remaining']} scans still pending.")
    else:
        typer.echo(f"Sync finished; {result['remaining']} scans still pending.")

    if result["remaining"]:
        raise typer.Exit(1)
