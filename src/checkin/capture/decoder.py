"""QR decoding of camera frames using pyzbar."""

import unicodedata
from typing import Protocol

from PIL import Image


class Decoder(Protocol):
    """Turns a frame into a decoded payload, or None if no code is visible."""

    def decode(self, frame: Image.Image) -> str | None: ...


def normalize_payload(data: bytes | str) -> str:
    """Decode symbol bytes as UTF-8 (lossy), NFC-normalize and strip."""
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="ignore")
    return unicodedata.normalize("NFC", data).strip()


class ZbarDecoder:
    """Decodes QR symbols with zbar.

    Only QR symbols are considered. If several codes are visible, the
    first one zbar reports wins.
    """

    def decode(self, frame: Image.Image) -> str | None:
        """Decode the first QR code in the frame.

        Args:
            frame: Camera frame as PIL Image

        Returns:
            Normalized payload string, or None if nothing readable was found
        """
        from pyzbar import pyzbar

        gray = frame.convert("L")
        for symbol in pyzbar.decode(gray, symbols=[pyzbar.ZBarSymbol.QRCODE]):
            payload = normalize_payload(symbol.data)
            if payload:
                return payload
        return None
