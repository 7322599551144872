"""Monitor module for network connectivity tracking."""

from checkin.monitor.connectivity import ConnectivityMonitor, ConnectivityWatcher

__all__ = ["ConnectivityMonitor", "ConnectivityWatcher"]
