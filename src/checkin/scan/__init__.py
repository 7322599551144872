"""Scan module - QR payload parsing and scan records."""

from checkin.scan.token import ScanRecord, ScanToken, parse_payload

__all__ = ["ScanRecord", "ScanToken", "parse_payload"]
