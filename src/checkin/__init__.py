"""Check-in agent - QR attendance capture with offline-first sync."""

__version__ = "0.1.0"
