"""Routing of fresh scans and draining of the offline queue."""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from checkin.exceptions import PersistenceError
from checkin.logging import (
    log_delivery_failed,
    log_delivery_success,
    log_drain_finished,
    log_scan_queued,
)
from checkin.monitor.connectivity import ConnectivityMonitor
from checkin.scan.token import ScanRecord
from checkin.sync.delivery import DeliveryClient
from checkin.sync.queue import PendingQueue

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "Saved offline - will sync when connection returns"

# Collector payload keys shown to the operator as the attendee's name
DISPLAY_NAME_KEYS = ("nombre", "name")


class OutcomeStatus(Enum):
    """How a fresh scan was handled."""

    DELIVERED = "delivered"
    FAILED = "failed"
    QUEUED = "queued"
    ERROR = "error"


@dataclass(frozen=True)
class DispatchOutcome:
    """What happened to one fresh scan, for display to the operator."""

    status: OutcomeStatus
    message: str
    record: ScanRecord | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status in (OutcomeStatus.DELIVERED, OutcomeStatus.QUEUED)

    @property
    def display_name(self) -> str | None:
        for key in DISPLAY_NAME_KEYS:
            value = self.data.get(key)
            if value:
                return str(value)
        return None


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the scan counters."""

    total: int = 0
    successful: int = 0
    failed: int = 0


class Stats:
    """Monotonic scan counters, safe to read from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._successful = 0
        self._failed = 0

    def record_success(self) -> None:
        with self._lock:
            self._total += 1
            self._successful += 1

    def record_failure(self) -> None:
        with self._lock:
            self._total += 1
            self._failed += 1

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(self._total, self._successful, self._failed)


@dataclass(frozen=True)
class DrainReport:
    """Result of one pass over the pending queue."""

    attempted: int = 0
    delivered: int = 0
    remaining: int = 0


class SyncCoordinator:
    """Sends fresh scans to the collector or queues them, and drains the queue.

    Offline scans are queued without a delivery attempt. Online scans are
    delivered immediately; a rejected or failed online delivery is reported
    to the operator and is not queued. Queued scans are retried in FIFO
    order, one at a time, whenever connectivity comes back.

    This is the only writer of the pending queue.
    """

    def __init__(
        self,
        queue: PendingQueue,
        client: DeliveryClient,
        connectivity: ConnectivityMonitor,
        stats: Stats | None = None,
    ) -> None:
        self.queue = queue
        self.client = client
        self.connectivity = connectivity
        self.stats = stats or Stats()

        self._drain_lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._drain_tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        """Number of scans waiting in the queue."""
        return len(self.queue)

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind to an event loop and drain whenever connectivity returns.

        Must be called from the loop's thread if ``loop`` is omitted.
        """
        self._loop = loop or asyncio.get_running_loop()
        self.connectivity.on_online(self._handle_online)

    def _handle_online(self) -> None:
        """Schedule a drain on the coordinator's loop (any thread)."""
        if self._loop is None or self._loop.is_closed():
            logger.warning("Connectivity restored but coordinator is not attached to a loop")
            return
        self._loop.call_soon_threadsafe(self._start_drain)

    def _start_drain(self) -> None:
        task = asyncio.ensure_future(self.drain())
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_done)

    def _drain_done(self, task: asyncio.Task) -> None:
        self._drain_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Queue drain failed: %s", task.exception())

    async def submit(self, record: ScanRecord) -> DispatchOutcome:
        """Route a freshly captured scan.

        Args:
            record: The accepted scan

        Returns:
            DispatchOutcome describing what the operator should see
        """
        try:
            return await self._route(record)
        except Exception as e:
            self.stats.record_failure()
            logger.exception("Unexpected error processing scan")
            return DispatchOutcome(
                status=OutcomeStatus.ERROR,
                message=f"Error processing scan: {e}",
                record=record,
            )

    async def _route(self, record: ScanRecord) -> DispatchOutcome:
        if not self.connectivity.is_online():
            return self._queue_offline(record)

        result = await self.client.deliver(record)
        if result.success:
            self.stats.record_success()
            log_delivery_success(logger, record, result.elapsed_ms, source="live")
            return DispatchOutcome(
                status=OutcomeStatus.DELIVERED,
                message=result.message,
                record=record,
                data=result.payload,
            )

        self.stats.record_failure()
        log_delivery_failed(logger, record, result.message, source="live", status_code=result.status_code)
        return DispatchOutcome(
            status=OutcomeStatus.FAILED,
            message=result.message,
            record=record,
            data=result.payload,
        )

    def _queue_offline(self, record: ScanRecord) -> DispatchOutcome:
        try:
            self.queue.enqueue(record)
        except PersistenceError as e:
            self.stats.record_failure()
            logger.error("Offline scan could not be stored: %s", e)
            return DispatchOutcome(
                status=OutcomeStatus.ERROR,
                message=f"Could not save scan offline: {e}",
                record=record,
            )

        self.stats.record_success()
        log_scan_queued(logger, record, len(self.queue))
        return DispatchOutcome(status=OutcomeStatus.QUEUED, message=OFFLINE_MESSAGE, record=record)

    async def drain(self) -> DrainReport:
        """Try to deliver every queued scan, oldest first.

        Records that still fail stay queued in their original order, as do
        records enqueued while the pass was running. Stops early if
        connectivity is lost. Does not touch Stats.

        Raises:
            PersistenceError: If the updated queue cannot be written (the
                stored queue is left as it was, so nothing is lost)
        """
        async with self._drain_lock:
            snapshot = self.queue.drainable()
            if not snapshot:
                return DrainReport()

            logger.info("Draining pending scans: count=%d", len(snapshot))

            failed: list[ScanRecord] = []
            attempted = 0
            delivered = 0
            for index, record in enumerate(snapshot):
                if not self.connectivity.is_online():
                    logger.info("Connectivity lost during drain, keeping %d scans", len(snapshot) - index)
                    failed.extend(snapshot[index:])
                    break

                attempted += 1
                result = await self.client.deliver(record)
                if result.success:
                    delivered += 1
                    log_delivery_success(logger, record, result.elapsed_ms, source="drain")
                else:
                    failed.append(record)
                    log_delivery_failed(
                        logger, record, result.message, source="drain", status_code=result.status_code
                    )

            # Scans queued while this pass awaited the collector
            appended = self.queue.drainable()[len(snapshot) :]
            self.queue.replace_all(failed + appended)

            report = DrainReport(
                attempted=attempted,
                delivered=delivered,
                remaining=len(self.queue),
            )
            log_drain_finished(logger, report.attempted, report.delivered, report.remaining)
            return report

    async def wait_for_drains(self) -> None:
        """Wait for drains scheduled by connectivity events to finish."""
        while self._drain_tasks:
            await asyncio.gather(*list(self._drain_tasks), return_exceptions=True)
