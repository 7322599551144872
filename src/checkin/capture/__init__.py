"""Capture module - camera frames, QR decoding and duplicate suppression."""

from checkin.capture.camera import CameraFrameSource, FrameSource, StaticFrameSource
from checkin.capture.decoder import Decoder, ZbarDecoder, normalize_payload
from checkin.capture.dedup import DedupGate

__all__ = [
    "CameraFrameSource",
    "Decoder",
    "DedupGate",
    "FrameSource",
    "StaticFrameSource",
    "ZbarDecoder",
    "normalize_payload",
]
