"""Tests for the scan session state machine."""

import asyncio

import pytest

from checkin.capture.camera import StaticFrameSource
from checkin.capture.dedup import DedupGate
from checkin.engine.session import Effect, ScanSession, SessionEvent, SessionState, transition
from checkin.exceptions import CaptureError
from checkin.monitor.connectivity import ConnectivityMonitor
from checkin.sync.coordinator import DispatchOutcome, OutcomeStatus, SyncCoordinator
from checkin.sync.delivery import DeliveryClient
from checkin.sync.queue import PendingQueue
from checkin.sync.store import MemoryStore

from conftest import FakeDecoder, blank_frame, wait_until

PAYLOAD = "EVENT:E1|LEAD:L1|HASH:H1"


class BrokenCamera(StaticFrameSource):
    """A camera that cannot be opened."""

    def __init__(self):
        super().__init__([blank_frame()])

    def open(self):
        raise CaptureError("camera busy")


class GatedCoordinator:
    """Coordinator stand-in whose submit() waits until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.submitted = []

    async def submit(self, record):
        self.submitted.append(record)
        await self.release.wait()
        return DispatchOutcome(status=OutcomeStatus.DELIVERED, message="ok", record=record)


def make_coordinator(collector, online: bool = True) -> SyncCoordinator:
    client = DeliveryClient("https://collector.test/scan", transport=collector.transport())
    return SyncCoordinator(PendingQueue(MemoryStore()), client, ConnectivityMonitor(online=online))


class TestTransition:
    """Tests for the pure transition function."""

    def test_start_opens_camera_and_arms_timer(self):
        assert transition(SessionState.IDLE, SessionEvent.START) == (
            SessionState.CAPTURING,
            (Effect.OPEN_CAMERA, Effect.ARM_DECODE_TIMER),
        )

    def test_no_payload_and_duplicate_stay_capturing(self):
        for event in (SessionEvent.NO_PAYLOAD, SessionEvent.DUPLICATE):
            assert transition(SessionState.CAPTURING, event) == (SessionState.CAPTURING, ())

    def test_accepted_stops_timer_before_dispatch(self):
        state, effects = transition(SessionState.CAPTURING, SessionEvent.ACCEPTED)

        assert state is SessionState.RESOLVING
        assert effects.index(Effect.CANCEL_DECODE_TIMER) < effects.index(Effect.DISPATCH)
        assert Effect.RELEASE_CAMERA in effects

    def test_result_restarts_capture(self):
        assert transition(SessionState.RESOLVING, SessionEvent.DISPATCHED) == (
            SessionState.RESULT,
            (Effect.SCHEDULE_RESTART,),
        )
        assert transition(SessionState.RESULT, SessionEvent.RESTART_ELAPSED)[0] is SessionState.CAPTURING

    def test_capture_failure_returns_to_idle(self):
        state, effects = transition(SessionState.CAPTURING, SessionEvent.CAPTURE_FAILED)

        assert state is SessionState.IDLE
        assert Effect.RELEASE_CAMERA in effects
        assert Effect.REPORT_ERROR in effects

    def test_stop_from_every_state_goes_idle(self):
        for state in SessionState:
            assert transition(state, SessionEvent.STOP)[0] is SessionState.IDLE

    def test_unknown_pairs_are_ignored(self):
        assert transition(SessionState.IDLE, SessionEvent.DISPATCHED) == (SessionState.IDLE, ())
        assert transition(SessionState.RESULT, SessionEvent.ACCEPTED) == (SessionState.RESULT, ())


class TestScanSession:
    """Tests for the asyncio session driver."""

    @pytest.mark.asyncio
    async def test_empty_frames_keep_capturing(self, collector):
        camera = StaticFrameSource([blank_frame()])
        session = ScanSession(camera, FakeDecoder(), make_coordinator(collector), decode_interval=60)

        await session.start()
        await session.tick()
        await session.tick()

        assert session.state is SessionState.CAPTURING
        assert camera.is_open
        assert collector.posted == []
        await session.stop()

    @pytest.mark.asyncio
    async def test_accepted_scan_stops_camera_and_dispatches(self, collector):
        camera = StaticFrameSource([blank_frame()])
        results = []
        session = ScanSession(
            camera,
            FakeDecoder([PAYLOAD]),
            make_coordinator(collector),
            decode_interval=60,
            result_display_delay=60,
        )
        session.on_result(results.append)

        await session.start()
        await session.tick()

        assert session.state is SessionState.RESOLVING
        assert camera.is_open is False

        outcome = await session.join_dispatch()

        assert session.state is SessionState.RESULT
        assert outcome.status is OutcomeStatus.DELIVERED
        assert results == [outcome]
        assert collector.posted[0]["qrData"] == PAYLOAD
        await session.stop()

    @pytest.mark.asyncio
    async def test_duplicate_within_window_is_suppressed(self, collector, clock):
        """Two identical payloads 1s apart dispatch once; a third after 3s dispatches again."""
        camera = StaticFrameSource([blank_frame()])
        session = ScanSession(
            camera,
            FakeDecoder([PAYLOAD, PAYLOAD, PAYLOAD]),
            make_coordinator(collector),
            dedup=DedupGate(window=3.0),
            decode_interval=60,
            result_display_delay=0,
            clock=clock,
        )

        await session.start()
        await session.tick()
        await session.join_dispatch()
        await wait_until(lambda: session.state is SessionState.CAPTURING)

        clock.advance(1.0)
        await session.tick()

        # Suppressed: still capturing, camera still held, nothing sent
        assert session.state is SessionState.CAPTURING
        assert camera.is_open
        assert len(collector.posted) == 1

        clock.advance(2.5)
        await session.tick()
        await session.join_dispatch()

        assert len(collector.posted) == 2
        await session.stop()

    @pytest.mark.asyncio
    async def test_result_restarts_capture_after_delay(self, collector):
        """After the display delay the camera is reopened and decoding resumes."""
        camera = StaticFrameSource([blank_frame()])
        decoder = FakeDecoder([PAYLOAD])
        states = []
        session = ScanSession(
            camera,
            decoder,
            make_coordinator(collector),
            decode_interval=0.005,
            result_display_delay=0.01,
        )
        session.on_state_change(states.append)

        await session.start()
        await wait_until(lambda: len(collector.posted) == 1)
        await wait_until(lambda: session.state is SessionState.CAPTURING and camera.open_count == 2)
        await wait_until(lambda: decoder.calls >= 3)

        assert states[:4] == [
            SessionState.CAPTURING,
            SessionState.RESOLVING,
            SessionState.RESULT,
            SessionState.CAPTURING,
        ]
        await session.stop()

    @pytest.mark.asyncio
    async def test_offline_scan_shows_queued_result(self, collector):
        coordinator = make_coordinator(collector, online=False)
        session = ScanSession(
            StaticFrameSource([blank_frame()]),
            FakeDecoder([PAYLOAD]),
            coordinator,
            decode_interval=60,
            result_display_delay=60,
        )

        await session.start()
        await session.tick()
        outcome = await session.join_dispatch()

        assert outcome.status is OutcomeStatus.QUEUED
        assert coordinator.pending_count == 1
        await session.stop()

    @pytest.mark.asyncio
    async def test_malformed_payload_is_still_dispatched(self, collector):
        """A QR code that isn't a check-in token still produces a record."""
        session = ScanSession(
            StaticFrameSource([blank_frame()]),
            FakeDecoder(["not a check-in code"]),
            make_coordinator(collector),
            decode_interval=60,
            result_display_delay=60,
        )

        await session.start()
        await session.tick()
        await session.join_dispatch()

        assert collector.posted[0]["eventId"] is None
        assert collector.posted[0]["qrData"] == "not a check-in code"
        await session.stop()

    @pytest.mark.asyncio
    async def test_camera_failure_returns_to_idle_and_reports(self, collector):
        errors = []
        session = ScanSession(BrokenCamera(), FakeDecoder(), make_coordinator(collector), decode_interval=60)
        session.on_error(errors.append)

        await session.start()

        assert session.state is SessionState.IDLE
        assert session.last_error == "camera busy"
        assert errors == ["camera busy"]

    @pytest.mark.asyncio
    async def test_frame_read_failure_returns_to_idle(self, collector):
        camera = StaticFrameSource([blank_frame()])
        session = ScanSession(camera, FakeDecoder(), make_coordinator(collector), decode_interval=60)

        await session.start()
        camera.close()  # device unplugged
        await session.tick()

        assert session.state is SessionState.IDLE
        assert session.last_error is not None

    @pytest.mark.asyncio
    async def test_decoder_exception_is_not_fatal(self, collector):
        class ExplodingDecoder:
            def decode(self, frame):
                raise ValueError("bad frame")

        session = ScanSession(
            StaticFrameSource([blank_frame()]), ExplodingDecoder(), make_coordinator(collector), decode_interval=60
        )

        await session.start()
        await session.tick()

        assert session.state is SessionState.CAPTURING
        await session.stop()

    @pytest.mark.asyncio
    async def test_dispatch_exception_becomes_error_outcome(self):
        class BrokenCoordinator:
            async def submit(self, record):
                raise RuntimeError("unexpected")

        session = ScanSession(
            StaticFrameSource([blank_frame()]),
            FakeDecoder([PAYLOAD]),
            BrokenCoordinator(),
            decode_interval=60,
            result_display_delay=60,
        )

        await session.start()
        await session.tick()
        outcome = await session.join_dispatch()

        assert outcome.status is OutcomeStatus.ERROR
        assert session.state is SessionState.RESULT
        await session.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_timer_and_releases_camera(self, collector):
        camera = StaticFrameSource([blank_frame()])
        session = ScanSession(camera, FakeDecoder(), make_coordinator(collector), decode_interval=60)

        await session.start()
        decode_task = session._decode_task
        await session.stop()

        assert session.state is SessionState.IDLE
        assert camera.is_open is False
        assert decode_task.done()

    @pytest.mark.asyncio
    async def test_stop_while_resolving_finishes_dispatch_without_restart(self):
        coordinator = GatedCoordinator()
        camera = StaticFrameSource([blank_frame()])
        session = ScanSession(
            camera,
            FakeDecoder([PAYLOAD]),
            coordinator,
            decode_interval=60,
            result_display_delay=0,
        )

        await session.start()
        await session.tick()
        await session.stop()
        coordinator.release.set()
        outcome = await session.join_dispatch()
        await asyncio.sleep(0.01)

        assert outcome.status is OutcomeStatus.DELIVERED
        assert session.state is SessionState.IDLE
        assert camera.open_count == 1


class FlakyCamera(StaticFrameSource):
    """A camera whose first read fails with an unexpected error."""

    def __init__(self):
        super().__init__([blank_frame()])
        self.reads = 0

    def get_frame(self):
        self.reads += 1
        if self.reads == 1:
            raise RuntimeError("driver hiccup")
        return super().get_frame()


class StuckCamera(StaticFrameSource):
    """A camera that errors while being released."""

    def close(self):
        super().close()
        raise RuntimeError("device stuck")


class TestScanSessionResilience:
    """Unexpected camera errors never stop the decode timer."""

    @pytest.mark.asyncio
    async def test_unexpected_frame_error_keeps_scanning(self, collector):
        camera = FlakyCamera()
        session = ScanSession(camera, FakeDecoder(), make_coordinator(collector), decode_interval=0.005)

        await session.start()
        await wait_until(lambda: camera.reads > 3)

        assert session.state is SessionState.CAPTURING
        assert camera.is_open
        assert not session._decode_task.done()
        await session.stop()

    @pytest.mark.asyncio
    async def test_frame_error_on_manual_tick_is_a_missed_attempt(self, collector):
        camera = FlakyCamera()
        session = ScanSession(camera, FakeDecoder([PAYLOAD]), make_coordinator(collector), decode_interval=60)

        await session.start()
        await session.tick()
        assert session.state is SessionState.CAPTURING

        await session.tick()
        assert session.state is SessionState.RESOLVING
        await session.join_dispatch()
        await session.stop()

    @pytest.mark.asyncio
    async def test_failing_camera_release_still_dispatches(self, collector):
        session = ScanSession(
            StuckCamera([blank_frame()]),
            FakeDecoder([PAYLOAD]),
            make_coordinator(collector),
            decode_interval=60,
            result_display_delay=60,
        )

        await session.start()
        await session.tick()
        outcome = await session.join_dispatch()

        assert outcome.status is OutcomeStatus.DELIVERED
        assert session.state is SessionState.RESULT
        await session.stop()
