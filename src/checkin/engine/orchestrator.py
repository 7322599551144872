"""Check-in orchestrator wiring the scan session, queue, delivery and connectivity."""

import asyncio
import logging
from typing import Any

from checkin.capture import CameraFrameSource, DedupGate, FrameSource, ZbarDecoder
from checkin.capture.decoder import Decoder
from checkin.config import Settings
from checkin.engine.session import ScanSession, SessionState
from checkin.monitor import ConnectivityMonitor, ConnectivityWatcher
from checkin.sync import DeliveryClient, PendingQueue, SyncCoordinator, open_store
from checkin.sync.store import DurableStore

logger = logging.getLogger(__name__)


class CheckinOrchestrator:
    """High-level entry point for a check-in station.

    Builds every component from Settings, recovers the pending queue, runs
    the connectivity watcher and drives the scan session. The CLI uses this.

    Example:
        orchestrator = CheckinOrchestrator(settings)
        await orchestrator.start()
        # ... scan until the operator stops ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        config: Settings,
        frame_source: FrameSource | None = None,
        decoder: Decoder | None = None,
        store: DurableStore | None = None,
        client: DeliveryClient | None = None,
        watch_connectivity: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Settings instance with all configuration
            frame_source: Camera override (default: OpenCV camera from config)
            decoder: Decoder override (default: zbar)
            store: Durable store override (default: from config)
            client: Delivery client override (default: from config)
            watch_connectivity: Probe the collector to track connectivity

        Raises:
            PersistenceError: If the durable store cannot be opened or read
        """
        self.config = config
        self._log = logger
        self._watch_connectivity = watch_connectivity

        self._store = store if store is not None else open_store(config.store_backend, config.store_path)
        self._queue = PendingQueue(self._store)
        self._client = client or DeliveryClient(
            collector_url=config.collector_url,
            timeout=config.delivery_timeout,
        )
        self.connectivity = ConnectivityMonitor(online=config.assume_online)
        self.coordinator = SyncCoordinator(self._queue, self._client, self.connectivity)
        self._watcher = ConnectivityWatcher(
            self.connectivity,
            self._client.check_reachable,
            interval=config.probe_interval,
        )

        self.session = ScanSession(
            frame_source=frame_source or CameraFrameSource(camera_index=config.camera_index),
            decoder=decoder or ZbarDecoder(),
            coordinator=self.coordinator,
            dedup=DedupGate(window=config.dedup_window),
            decode_interval=config.decode_interval,
            result_display_delay=config.result_display_delay,
        )

        self._running = False
        self._watcher_task: asyncio.Task | None = None

    @property
    def state(self) -> SessionState:
        """Get current session state."""
        return self.session.state

    @property
    def queue_size(self) -> int:
        """Get number of scans waiting for delivery."""
        return self.coordinator.pending_count

    async def start(self, scan: bool = True) -> None:
        """Start the orchestrator.

        Attaches the coordinator to the running loop, starts the
        connectivity watcher, drains any scans recovered from a previous
        run and (unless ``scan`` is False) starts the scan session.
        """
        if self._running:
            return
        self._running = True

        self.coordinator.attach()
        self.session.on_state_change(self._handle_state_change)

        self._log.info(
            "Starting check-in orchestrator, collector=%s, pending=%d",
            self.config.collector_url,
            self.queue_size,
        )

        if self._watch_connectivity:
            await self._watcher.check_once()
            self._watcher_task = asyncio.create_task(self._connectivity_worker())

        if self.queue_size and self.connectivity.is_online():
            await self.force_sync()

        if scan:
            await self.session.start()

    def _handle_state_change(self, new_state: SessionState) -> None:
        self._log.debug("Session state changed: state=%s", new_state.value)

    async def _connectivity_worker(self) -> None:
        """Background worker probing collector reachability."""
        while self._running:
            try:
                await asyncio.sleep(self._watcher.interval)
                await self._watcher.check_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._log.error("Connectivity worker error: %s", e)

    async def force_sync(self) -> dict[str, int]:
        """Drain the pending queue now.

        Returns:
            Counts of attempted, delivered and remaining scans
        """
        report = await self.coordinator.drain()
        return {
            "attempted": report.attempted,
            "delivered": report.delivered,
            "remaining": report.remaining,
        }

    async def stop(self) -> None:
        """Stop the orchestrator gracefully.

        Stops the session, lets in-flight deliveries and drains finish,
        stops the watcher and closes resources.
        """
        self._running = False

        await self.session.stop()
        await self.session.join_dispatch()

        if self._watcher_task and not self._watcher_task.done():
            self._watcher_task.cancel()
            try:
                await self._watcher_task
            except asyncio.CancelledError:
                pass

        await self.coordinator.wait_for_drains()
        await self._client.close()
        self._store.close()

        stats = self.coordinator.stats.snapshot()
        self._log.info(
            "Check-in orchestrator stopped, total=%d, successful=%d, failed=%d, pending=%d",
            stats.total,
            stats.successful,
            stats.failed,
            self.queue_size,
        )

    def get_status(self) -> dict[str, Any]:
        """Get current orchestrator status.

        Returns:
            Dictionary with session state, connectivity, stats and queue size
        """
        stats = self.coordinator.stats.snapshot()
        last = self.session.last_result
        return {
            "state": self.session.state.value,
            "running": self._running,
            "online": self.connectivity.is_online(),
            "stats": {
                "total": stats.total,
                "successful": stats.successful,
                "failed": stats.failed,
            },
            "pending": self.queue_size,
            "last_result": (
                {"status": last.status.value, "message": last.message}
                if last
                else None
            ),
            "last_error": self.session.last_error,
            "collector_url": self.config.collector_url,
        }
