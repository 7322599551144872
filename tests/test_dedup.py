"""Tests for duplicate suppression."""

from checkin.capture.dedup import DedupGate


class TestDedupGate:
    """Tests for DedupGate.should_suppress()."""

    def test_first_payload_passes(self):
        gate = DedupGate(window=3.0)

        assert gate.should_suppress("EVENT:E1", now=10.0) is False

    def test_repeat_within_window_is_suppressed(self):
        """Same payload 1 second later is ignored."""
        gate = DedupGate(window=3.0)
        gate.should_suppress("EVENT:E1", now=10.0)

        assert gate.should_suppress("EVENT:E1", now=11.0) is True

    def test_repeat_after_window_passes(self):
        """Same payload after the window is a new scan."""
        gate = DedupGate(window=3.0)
        gate.should_suppress("EVENT:E1", now=10.0)

        assert gate.should_suppress("EVENT:E1", now=13.0) is False

    def test_window_measured_from_accepted_detection(self):
        """Suppressed repeats don't extend the window."""
        gate = DedupGate(window=3.0)
        gate.should_suppress("EVENT:E1", now=10.0)
        assert gate.should_suppress("EVENT:E1", now=12.5) is True

        assert gate.should_suppress("EVENT:E1", now=13.1) is False

    def test_single_slot(self):
        """Only the immediately preceding payload is remembered."""
        gate = DedupGate(window=3.0)
        gate.should_suppress("EVENT:A", now=10.0)
        gate.should_suppress("EVENT:B", now=10.5)

        assert gate.should_suppress("EVENT:A", now=11.0) is False

    def test_reset_forgets_payload(self):
        gate = DedupGate(window=3.0)
        gate.should_suppress("EVENT:E1", now=10.0)
        gate.reset()

        assert gate.should_suppress("EVENT:E1", now=10.5) is False

    def test_zero_window_never_suppresses(self):
        gate = DedupGate(window=0.0)
        gate.should_suppress("EVENT:E1", now=10.0)

        assert gate.should_suppress("EVENT:E1", now=10.0) is False
