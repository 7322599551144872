"""Duplicate suppression for consecutive QR detections."""

import time


class DedupGate:
    """Suppresses repeat detections of the same payload within a window.

    The decode loop samples every ~500ms, so a code held in front of the
    camera is detected many times. Only the immediately preceding accepted
    payload is remembered (single slot); a different payload in between
    resets it.
    """

    def __init__(self, window: float = 3.0):
        """Initialize the gate.

        Args:
            window: Seconds during which an identical consecutive payload
                    is ignored.
        """
        self.window = window
        self.last_raw: str | None = None
        self.last_seen: float = 0.0

    def should_suppress(self, raw: str, now: float | None = None) -> bool:
        """Decide whether a decoded payload is a repeat.

        On a non-suppressed call the remembered (raw, timestamp) pair is
        replaced, so the window restarts from the accepted detection.

        Args:
            raw: Decoded payload string
            now: Monotonic timestamp in seconds (defaults to time.monotonic())

        Returns:
            True if the payload should be ignored.
        """
        if now is None:
            now = time.monotonic()

        if raw == self.last_raw and now - self.last_seen < self.window:
            return True

        self.last_raw = raw
        self.last_seen = now
        return False

    def age(self, now: float | None = None) -> float:
        """Seconds since the remembered payload was accepted."""
        if now is None:
            now = time.monotonic()
        return now - self.last_seen

    def reset(self) -> None:
        """Forget the remembered payload."""
        self.last_raw = None
        self.last_seen = 0.0
