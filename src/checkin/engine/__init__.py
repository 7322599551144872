"""Engine module for scan session orchestration."""

from checkin.engine.orchestrator import CheckinOrchestrator
from checkin.engine.session import Effect, ScanSession, SessionEvent, SessionState, transition

__all__ = [
    "CheckinOrchestrator",
    "Effect",
    "ScanSession",
    "SessionEvent",
    "SessionState",
    "transition",
]
