"""Online/offline tracking with transition events."""

import logging
import threading
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Process-wide online/offline flag with transition callbacks.

    ``set_online`` is the single writer, called by whatever observes the
    network (see ConnectivityWatcher). Callbacks run synchronously in the
    writer's thread, once per actual transition; setting the current value
    again is not a transition.

    Example:
        monitor = ConnectivityMonitor(online=False)
        monitor.on_online(lambda: print("back online"))
        monitor.set_online(True)  # prints once
        monitor.set_online(True)  # no-op
    """

    def __init__(self, online: bool = True) -> None:
        """Initialize the monitor.

        Args:
            online: Initial state until the first notification arrives
        """
        self._online = online
        self._lock = threading.Lock()
        self._online_callbacks: list[Callable[[], None]] = []
        self._offline_callbacks: list[Callable[[], None]] = []
        self._change_callbacks: list[Callable[[bool], None]] = []

    def is_online(self) -> bool:
        """Return the current connectivity state."""
        with self._lock:
            return self._online

    def on_online(self, callback: Callable[[], None]) -> None:
        """Register callback for offline -> online transitions."""
        self._online_callbacks.append(callback)

    def on_offline(self, callback: Callable[[], None]) -> None:
        """Register callback for online -> offline transitions."""
        self._offline_callbacks.append(callback)

    def on_change(self, callback: Callable[[bool], None]) -> None:
        """Register callback called with the new state on any transition."""
        self._change_callbacks.append(callback)

    def set_online(self, online: bool) -> bool:
        """Record the environment's connectivity state.

        Args:
            online: Whether the network is currently reachable

        Returns:
            True if this call changed the state.
        """
        with self._lock:
            if self._online == online:
                return False
            self._online = online

        logger.info("Connectivity changed: online=%s", online)

        callbacks = self._online_callbacks if online else self._offline_callbacks
        for callback in callbacks:
            self._safe_call(callback)
        for change_callback in self._change_callbacks:
            self._safe_call(change_callback, online)
        return True

    def _safe_call(self, callback: Callable, *args: object) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Connectivity callback failed")


class ConnectivityWatcher:
    """Feeds a ConnectivityMonitor from periodic reachability probes.

    The host offers no portable push notification for network
    reachability, so this worker stands in for it: it asks ``probe`` every
    ``interval`` seconds and reports the answer to the monitor, which only
    raises events on actual transitions.
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        probe: Callable[[], Awaitable[bool]],
        interval: float = 15.0,
    ) -> None:
        self.monitor = monitor
        self.probe = probe
        self.interval = interval

    async def check_once(self) -> bool:
        """Probe once and update the monitor.

        Returns:
            The probed state (a failing probe counts as offline).
        """
        try:
            online = await self.probe()
        except Exception as e:
            logger.warning("Reachability probe failed: %s", e)
            online = False
        self.monitor.set_online(online)
        return online
