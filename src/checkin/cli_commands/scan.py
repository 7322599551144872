"""Scanning CLI commands."""

import asyncio
import json
import signal
from pathlib import Path

import typer

from checkin.capture import CameraFrameSource, StaticFrameSource, ZbarDecoder
from checkin.config import Settings, get_settings
from checkin.exceptions import CaptureError, PersistenceError
from checkin.logging import setup_logging
from checkin.scan import ScanRecord, parse_payload
from checkin.sync import DispatchOutcome

scan_app = typer.Typer(
    name="scan",
    help="Scanning - run the camera scanner or check still images.",
    no_args_is_help=True,
)


def _output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


def _outcome_data(outcome: DispatchOutcome) -> dict:
    record = outcome.record
    return {
        "status": outcome.status.value,
        "success": outcome.success,
        "message": outcome.message,
        "name": outcome.display_name,
        "event_id": record.event_id if record else None,
        "lead_id": record.lead_id if record else None,
        "scanned_at": record.scanned_at if record else None,
    }


def _outcome_message(outcome: DispatchOutcome) -> str:
    mark = "OK " if outcome.success else "ERR"
    message = f"[{mark}] {outcome.status.value}: {outcome.message}"
    if outcome.display_name:
        message += f" - {outcome.display_name}"
    return message


def _print_outcome(outcome: DispatchOutcome, as_json: bool) -> None:
    _output(_outcome_data(outcome), as_json, _outcome_message(outcome))


async def _run_scanner(settings: Settings, camera_index: int, as_json: bool) -> int:
    """Run the camera session until the operator stops it.

    Returns:
        Process exit code (1 if the camera failed)
    """
    from checkin.engine import CheckinOrchestrator

    orchestrator = CheckinOrchestrator(
        settings,
        frame_source=CameraFrameSource(camera_index=camera_index),
    )

    stop_event = asyncio.Event()
    errors: list[str] = []

    def handle_error(message: str) -> None:
        errors.append(message)
        stop_event.set()

    orchestrator.session.on_result(lambda outcome: _print_outcome(outcome, as_json))
    orchestrator.session.on_error(handle_error)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    try:
        await orchestrator.start()
        if not as_json:
            typer.echo("Scanner started. Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        await orchestrator.stop()

    status = orchestrator.get_status()
    if errors:
        _output(
            {"status": "error", "message": errors[-1]},
            as_json,
            f"Camera error: {errors[-1]}",
        )
        return 1

    stats = status["stats"]
    _output(
        {"status": "stopped", **stats, "pending": status["pending"]},
        as_json,
        f"Stopped. total={stats['total']} successful={stats['successful']} "
        f"failed={stats['failed']} pending={status['pending']}",
    )
    return 0


@scan_app.command()
def start(
    camera: int = typer.Option(
        None,
        "--camera",
        "-c",
        help="Camera device index (default: from config)",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Start scanning with the camera.

    Each accepted QR code is sent to the collector, or stored offline when
    the collector is unreachable. Press Ctrl+C to stop.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.station_id)

    camera_index = settings.camera_index if camera is None else camera

    try:
        exit_code = asyncio.run(_run_scanner(settings, camera_index, output_json))
    except PersistenceError as e:
        _output({"status": "error", "message": str(e)}, output_json, f"Storage error: {e}")
        raise typer.Exit(1)

    if exit_code:
        raise typer.Exit(exit_code)


async def _scan_images(settings: Settings, paths: list[Path], as_json: bool) -> int:
    from checkin.engine import CheckinOrchestrator

    frames = StaticFrameSource.from_files(paths)
    decoder = ZbarDecoder()
    orchestrator = CheckinOrchestrator(settings, frame_source=frames, decoder=decoder)

    failures = 0
    await orchestrator.start(scan=False)
    try:
        with frames:
            for path in paths:
                raw = decoder.decode(frames.get_frame())
                if not raw:
                    failures += 1
                    _output(
                        {"status": "no_code", "path": str(path)},
                        as_json,
                        f"[ERR] {path}: no QR code found",
                    )
                    continue

                record = ScanRecord.capture(parse_payload(raw))
                outcome = await orchestrator.coordinator.submit(record)
                if not outcome.success:
                    failures += 1
                _print_outcome(outcome, as_json)
    finally:
        await orchestrator.stop()

    return 1 if failures else 0


@scan_app.command()
def image(
    paths: list[Path] = typer.Argument(..., help="Image files containing QR codes", exists=True),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Scan QR codes from image files instead of the camera."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.station_id)

    try:
        exit_code = asyncio.run(_scan_images(settings, paths, output_json))
    except (CaptureError, PersistenceError) as e:
        _output({"status": "error", "message": str(e)}, output_json, f"Error: {e}")
        raise typer.Exit(1)

    if exit_code:
        raise typer.Exit(exit_code)
