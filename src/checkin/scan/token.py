"""Parsing of decoded QR payloads into attendance records.

Payloads look like ``EVENT:E1|LEAD:L1|TS:1718000000|HASH:ab12``. Parsing is
permissive on purpose: a malformed code still becomes a traceable record
that the collector can reject, instead of an exception in the scan loop.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

SEGMENT_SEPARATOR = "|"
KEY_SEPARATOR = ":"

# Payload key -> ScanToken field
KNOWN_KEYS = {
    "EVENT": "event_id",
    "LEAD": "lead_id",
    "HASH": "hash",
}


@dataclass(frozen=True)
class ScanToken:
    """Structured fields extracted from one decoded QR payload."""

    raw: str
    event_id: str | None = None
    lead_id: str | None = None
    hash: str | None = None


def parse_payload(raw: str) -> ScanToken:
    """Parse a decoded payload into a ScanToken.

    Segments without a ``:`` are skipped, unknown keys are dropped and the
    last occurrence of a repeated key wins. Only the first ``:`` separates
    key from value. Never raises.
    """
    fields: dict[str, str] = {}
    for segment in raw.split(SEGMENT_SEPARATOR):
        key, sep, value = segment.partition(KEY_SEPARATOR)
        if not sep:
            continue
        fields[key] = value

    return ScanToken(
        raw=raw,
        **{attr: fields[key] for key, attr in KNOWN_KEYS.items() if key in fields},
    )


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ScanRecord:
    """A parsed scan stamped with its capture time.

    The unit that is delivered to the collector and persisted in the
    pending queue. ``to_payload`` gives the collector's JSON shape.
    """

    raw: str
    scanned_at: str
    event_id: str | None = None
    lead_id: str | None = None
    hash: str | None = None

    @classmethod
    def capture(cls, token: ScanToken, scanned_at: str | None = None) -> "ScanRecord":
        """Create a record from a token, stamped now unless a time is given."""
        return cls(
            raw=token.raw,
            scanned_at=scanned_at or _utc_now(),
            event_id=token.event_id,
            lead_id=token.lead_id,
            hash=token.hash,
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the collector/storage JSON body for this record."""
        return {
            "eventId": self.event_id,
            "leadId": self.lead_id,
            "hash": self.hash,
            "scannedAt": self.scanned_at,
            "qrData": self.raw,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ScanRecord":
        """Rebuild a record from its JSON body. Missing keys become None."""
        return cls(
            raw=data.get("qrData") or "",
            scanned_at=data.get("scannedAt") or "",
            event_id=data.get("eventId"),
            lead_id=data.get("leadId"),
            hash=data.get("hash"),
        )
