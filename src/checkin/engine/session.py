"""Scan session state machine: capture, decode, dispatch, show result, repeat."""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable

from checkin.capture.camera import FrameSource
from checkin.capture.decoder import Decoder
from checkin.capture.dedup import DedupGate
from checkin.exceptions import CaptureError
from checkin.logging import log_scan_accepted, log_scan_suppressed, log_state_change
from checkin.scan.token import ScanRecord, parse_payload
from checkin.sync.coordinator import DispatchOutcome, OutcomeStatus, SyncCoordinator

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """State of the scan session."""

    IDLE = "idle"  # camera off
    CAPTURING = "capturing"  # camera on, decoding periodically
    RESOLVING = "resolving"  # scan accepted, dispatch in progress
    RESULT = "result"  # outcome shown, restart pending


class SessionEvent(Enum):
    """Inputs to the session state machine."""

    START = "start"
    STOP = "stop"
    NO_PAYLOAD = "no_payload"
    DUPLICATE = "duplicate"
    ACCEPTED = "accepted"
    DISPATCHED = "dispatched"
    RESTART_ELAPSED = "restart_elapsed"
    CAPTURE_FAILED = "capture_failed"


class Effect(Enum):
    """Side effects requested by a transition, run in order by ScanSession."""

    OPEN_CAMERA = "open_camera"
    ARM_DECODE_TIMER = "arm_decode_timer"
    CANCEL_DECODE_TIMER = "cancel_decode_timer"
    RELEASE_CAMERA = "release_camera"
    DISPATCH = "dispatch"
    SCHEDULE_RESTART = "schedule_restart"
    CANCEL_RESTART = "cancel_restart"
    REPORT_ERROR = "report_error"


_S = SessionState
_E = SessionEvent

_RESUME_CAPTURE = (Effect.OPEN_CAMERA, Effect.ARM_DECODE_TIMER)
_SHUTDOWN_CAPTURE = (Effect.CANCEL_DECODE_TIMER, Effect.RELEASE_CAMERA)

_TRANSITIONS: dict[tuple[SessionState, SessionEvent], tuple[SessionState, tuple[Effect, ...]]] = {
    (_S.IDLE, _E.START): (_S.CAPTURING, _RESUME_CAPTURE),
    (_S.IDLE, _E.STOP): (_S.IDLE, _SHUTDOWN_CAPTURE),
    (_S.CAPTURING, _E.NO_PAYLOAD): (_S.CAPTURING, ()),
    (_S.CAPTURING, _E.DUPLICATE): (_S.CAPTURING, ()),
    (_S.CAPTURING, _E.ACCEPTED): (_S.RESOLVING, (*_SHUTDOWN_CAPTURE, Effect.DISPATCH)),
    (_S.CAPTURING, _E.CAPTURE_FAILED): (_S.IDLE, (*_SHUTDOWN_CAPTURE, Effect.REPORT_ERROR)),
    (_S.CAPTURING, _E.STOP): (_S.IDLE, _SHUTDOWN_CAPTURE),
    (_S.RESOLVING, _E.DISPATCHED): (_S.RESULT, (Effect.SCHEDULE_RESTART,)),
    (_S.RESOLVING, _E.STOP): (_S.IDLE, (Effect.CANCEL_RESTART,)),
    (_S.RESULT, _E.RESTART_ELAPSED): (_S.CAPTURING, _RESUME_CAPTURE),
    (_S.RESULT, _E.STOP): (_S.IDLE, (Effect.CANCEL_RESTART,)),
}


def transition(state: SessionState, event: SessionEvent) -> tuple[SessionState, tuple[Effect, ...]]:
    """Pure transition function of the session state machine.

    Pairs without a rule leave the state unchanged and request nothing
    (for example a dispatch finishing after the operator stopped).
    """
    return _TRANSITIONS.get((state, event), (state, ()))


class ScanSession:
    """Drives the scan cycle for one check-in point.

    While capturing, a decode timer reads a frame every ``decode_interval``
    seconds. A decoded payload that passes the dedup gate stops the camera
    and is dispatched through the SyncCoordinator; the outcome is held for
    ``result_display_delay`` seconds and then capturing resumes.

    Example:
        session = ScanSession(camera, ZbarDecoder(), coordinator)
        session.on_result(lambda outcome: print(outcome.message))
        await session.start()
        ...
        await session.stop()
    """

    def __init__(
        self,
        frame_source: FrameSource,
        decoder: Decoder,
        coordinator: SyncCoordinator,
        dedup: DedupGate | None = None,
        decode_interval: float = 0.5,
        result_display_delay: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the session.

        Args:
            frame_source: Camera providing frames
            decoder: QR decoder applied to each frame
            coordinator: Routes accepted scans to delivery or the queue
            dedup: Duplicate gate (default: 3 second window)
            decode_interval: Seconds between decode attempts
            result_display_delay: Seconds a result is shown before rescanning
            clock: Monotonic clock used for duplicate suppression
        """
        self.frame_source = frame_source
        self.decoder = decoder
        self.coordinator = coordinator
        self.dedup = dedup or DedupGate()
        self.decode_interval = decode_interval
        self.result_display_delay = result_display_delay
        self._clock = clock

        self._state = SessionState.IDLE
        self._decode_task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None
        self._dispatch_task: asyncio.Task | None = None
        self._pending_record: ScanRecord | None = None

        self.last_result: DispatchOutcome | None = None
        self.last_error: str | None = None

        # Callbacks
        self._state_change_callbacks: list[Callable[[SessionState], None]] = []
        self._result_callbacks: list[Callable[[DispatchOutcome], None]] = []
        self._error_callbacks: list[Callable[[str], None]] = []

    @property
    def state(self) -> SessionState:
        """Get current session state."""
        return self._state

    def on_state_change(self, callback: Callable[[SessionState], None]) -> None:
        """Register callback called with the new state on every change."""
        self._state_change_callbacks.append(callback)

    def on_result(self, callback: Callable[[DispatchOutcome], None]) -> None:
        """Register callback called with each dispatch outcome."""
        self._result_callbacks.append(callback)

    def on_error(self, callback: Callable[[str], None]) -> None:
        """Register callback for errors that stop the session (camera)."""
        self._error_callbacks.append(callback)

    def _notify(self, callbacks: list[Callable], value: object) -> None:
        for callback in callbacks:
            try:
                callback(value)
            except Exception:
                logger.exception("Session callback failed")

    async def start(self) -> None:
        """Start capturing (operator action)."""
        self.last_error = None
        self._fire(SessionEvent.START)

    async def stop(self) -> None:
        """Stop the session from any state (operator action).

        Cancels the decode and restart timers and releases the camera. An
        in-flight dispatch is allowed to finish so its scan is not lost.
        """
        timers = (self._decode_task, self._restart_task)
        self._fire(SessionEvent.STOP)
        for task in timers:
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def join_dispatch(self) -> DispatchOutcome | None:
        """Wait for the in-flight dispatch, if any, and return its outcome."""
        task = self._dispatch_task
        if task is None:
            return self.last_result
        await task
        return self.last_result

    async def tick(self) -> None:
        """Run one decode attempt. No-op unless capturing."""
        if self._state is not SessionState.CAPTURING:
            return

        try:
            frame = self.frame_source.get_frame()
        except CaptureError as e:
            self.last_error = str(e)
            self._fire(SessionEvent.CAPTURE_FAILED)
            return
        except Exception as e:
            # A bad frame is a missed attempt; the camera is still held
            logger.warning("Frame read failed: %s", e)
            self._fire(SessionEvent.NO_PAYLOAD)
            return

        try:
            raw = self.decoder.decode(frame)
        except Exception as e:
            logger.warning("Decoder failed on frame: %s", e)
            raw = None

        if not raw:
            self._fire(SessionEvent.NO_PAYLOAD)
            return

        now = self._clock()
        if self.dedup.should_suppress(raw, now):
            log_scan_suppressed(logger, self.dedup.age(now))
            self._fire(SessionEvent.DUPLICATE)
            return

        self._pending_record = ScanRecord.capture(parse_payload(raw))
        log_scan_accepted(logger, self._pending_record)
        self._fire(SessionEvent.ACCEPTED)

    def _fire(self, event: SessionEvent) -> None:
        old_state = self._state
        new_state, effects = transition(old_state, event)
        self._state = new_state

        if new_state is not old_state:
            log_state_change(logger, old_state.value, new_state.value, trigger=event.value)
            self._notify(self._state_change_callbacks, new_state)

        for effect in effects:
            # A failing effect may already have moved the machine on
            if self._state is not new_state:
                break
            self._run_effect(effect)

    def _run_effect(self, effect: Effect) -> None:
        if effect is Effect.OPEN_CAMERA:
            try:
                self.frame_source.open()
            except CaptureError as e:
                self.last_error = str(e)
                # Re-enters the machine: capturing -> idle with report_error
                self._fire(SessionEvent.CAPTURE_FAILED)
        elif effect is Effect.ARM_DECODE_TIMER:
            if self._state is SessionState.CAPTURING:
                self._decode_task = asyncio.create_task(self._decode_loop())
        elif effect is Effect.CANCEL_DECODE_TIMER:
            self._cancel(self._decode_task)
            self._decode_task = None
        elif effect is Effect.RELEASE_CAMERA:
            try:
                self.frame_source.close()
            except Exception:
                logger.exception("Camera release failed")
        elif effect is Effect.DISPATCH:
            record = self._pending_record
            self._pending_record = None
            if record is not None:
                self._dispatch_task = asyncio.create_task(self._dispatch(record))
        elif effect is Effect.SCHEDULE_RESTART:
            self._restart_task = asyncio.create_task(self._restart_after_delay())
        elif effect is Effect.CANCEL_RESTART:
            self._cancel(self._restart_task)
            self._restart_task = None
        elif effect is Effect.REPORT_ERROR:
            logger.error("Capture failed: %s", self.last_error)
            self._notify(self._error_callbacks, self.last_error or "Camera unavailable")

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        # The decode loop may cancel itself from inside tick(); it exits on
        # the state check instead.
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _decode_loop(self) -> None:
        """Decode timer: one attempt every decode_interval while capturing."""
        try:
            while True:
                await asyncio.sleep(self.decode_interval)
                if self._state is not SessionState.CAPTURING:
                    break
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Decode attempt failed")
                if self._state is not SessionState.CAPTURING:
                    break
        except asyncio.CancelledError:
            pass

    async def _dispatch(self, record: ScanRecord) -> None:
        try:
            outcome = await self.coordinator.submit(record)
        except Exception as e:
            logger.exception("Dispatch failed")
            outcome = DispatchOutcome(
                status=OutcomeStatus.ERROR,
                message=f"Error processing scan: {e}",
                record=record,
            )

        self.last_result = outcome
        self._notify(self._result_callbacks, outcome)
        self._fire(SessionEvent.DISPATCHED)

    async def _restart_after_delay(self) -> None:
        try:
            await asyncio.sleep(self.result_display_delay)
        except asyncio.CancelledError:
            return
        self._restart_task = None
        self._fire(SessionEvent.RESTART_ELAPSED)
