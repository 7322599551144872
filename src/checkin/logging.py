"""Structured JSON logging for the check-in agent.

Every record carries the station it came from, so logs shipped from
several check-in points can be told apart. Attendee payloads are logged
only as the token fields, never the raw QR data or the collector's
response body.

Usage:
    import logging

    from checkin.logging import setup_logging

    setup_logging("INFO", station_id="door-a")
    logging.getLogger("checkin.sync").info("Scan queued offline", extra={"queue_size": 3})
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from pythonjsonlogger import jsonlogger

from checkin import __version__

if TYPE_CHECKING:
    from checkin.scan.token import ScanRecord

LOG_FORMAT = "%(levelname)s %(name)s %(message)s"
RENAMED_FIELDS = {"levelname": "level", "name": "logger"}

# A station log file is kept small; rotation keeps a few generations
LOG_FILE_MAX_BYTES = 5_000_000
LOG_FILE_BACKUPS = 3


def build_formatter(station_id: str | None = None) -> jsonlogger.JsonFormatter:
    """Build the JSON formatter used by every handler.

    Records get an ISO-8601 UTC ``timestamp``, ``level``, ``logger``,
    ``agent_version`` and, when configured, ``station_id``.
    """
    static_fields = {"agent_version": __version__}
    if station_id:
        static_fields["station_id"] = station_id
    return jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields=RENAMED_FIELDS,
        static_fields=static_fields,
        timestamp=True,
    )


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    station_id: str | None = None,
) -> None:
    """Send JSON logs to stderr and, optionally, a rotating file.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output. stdout is left to the CLI.
    """
    formatter = build_formatter(station_id)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS)
        )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())


# --- Audit Event Functions ---


def _record_fields(record: ScanRecord) -> dict:
    return {
        "event_id": record.event_id,
        "lead_id": record.lead_id,
        "scanned_at": record.scanned_at,
    }


def log_scan_accepted(logger: logging.Logger, record: ScanRecord) -> None:
    """Log a decoded payload that passed duplicate suppression."""
    logger.info("Scan accepted", extra={"event": "scan_accepted", **_record_fields(record)})


def log_scan_suppressed(logger: logging.Logger, age_seconds: float) -> None:
    """Log a repeat detection ignored by the dedup gate.

    Args:
        logger: Logger instance
        age_seconds: Seconds since the identical payload was accepted
    """
    logger.debug(
        "Scan suppressed",
        extra={"event": "scan_suppressed", "age_seconds": round(age_seconds, 3)},
    )


def log_scan_queued(logger: logging.Logger, record: ScanRecord, queue_size: int) -> None:
    """Log a scan stored for later delivery."""
    logger.info(
        "Scan queued offline",
        extra={"event": "scan_queued", "queue_size": queue_size, **_record_fields(record)},
    )


def log_delivery_success(
    logger: logging.Logger,
    record: ScanRecord,
    response_time_ms: float,
    source: str,
) -> None:
    """Log an attendance record accepted by the collector.

    Args:
        logger: Logger instance
        record: The delivered record
        response_time_ms: Collector response time in milliseconds
        source: "live" for fresh scans, "drain" for queued ones
    """
    logger.info(
        "Delivery successful",
        extra={
            "event": "delivery_success",
            "source": source,
            "response_time_ms": round(response_time_ms, 1),
            **_record_fields(record),
        },
    )


def log_delivery_failed(
    logger: logging.Logger,
    record: ScanRecord,
    error: str,
    source: str,
    status_code: int | None = None,
) -> None:
    """Log a failed delivery attempt.

    Args:
        logger: Logger instance
        record: The record that was not delivered
        error: Error message from the collector or transport
        source: "live" for fresh scans, "drain" for queued ones
        status_code: HTTP status, if a response was received
    """
    extra = {
        "event": "delivery_failed",
        "source": source,
        "error": error,
        **_record_fields(record),
    }
    if status_code is not None:
        extra["status_code"] = status_code
    logger.warning("Delivery failed", extra=extra)


def log_drain_finished(
    logger: logging.Logger,
    attempted: int,
    delivered: int,
    remaining: int,
) -> None:
    """Log the end of a queue drain pass."""
    logger.info(
        "Queue drain finished",
        extra={
            "event": "drain_finished",
            "attempted": attempted,
            "delivered": delivered,
            "remaining": remaining,
        },
    )


def log_state_change(
    logger: logging.Logger,
    old_state: str,
    new_state: str,
    trigger: str | None = None,
) -> None:
    """Log a session state transition.

    Args:
        logger: Logger instance
        old_state: Previous state
        new_state: New state
        trigger: Event that caused the change
    """
    extra = {
        "event": "state_change",
        "old_state": old_state,
        "new_state": new_state,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.info("State changed", extra=extra)
