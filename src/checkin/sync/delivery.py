"""Async HTTP delivery of scan records to the attendance collector."""

import json
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx

from checkin import __version__
from checkin.scan.token import ScanRecord

DEFAULT_SUCCESS_MESSAGE = "Attendance recorded"


@dataclass
class DeliveryResult:
    """Result of one delivery attempt."""

    success: bool
    message: str
    payload: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None
    elapsed_ms: float = 0.0


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    """Return the response body as a dict, or None if it is not a JSON object."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


class DeliveryClient:
    """Posts scan records to the collector, one request per record.

    Uses a shared httpx.AsyncClient with a bounded timeout. There is no
    retry here: a failed attempt is reported back and the caller decides
    whether the record is queued.
    """

    def __init__(
        self,
        collector_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            collector_url: Full URL of the collector endpoint
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.collector_url = collector_url
        self.timeout = timeout

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": f"checkin-agent/{__version__}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def deliver(self, record: ScanRecord) -> DeliveryResult:
        """Send one record to the collector.

        Args:
            record: The scan to record as attendance

        Returns:
            DeliveryResult; success only for a 2xx response
        """
        started = time.monotonic()
        try:
            response = await self._client.post(self.collector_url, json=record.to_payload())
        except httpx.TimeoutException:
            return DeliveryResult(
                success=False,
                message=f"Timeout: collector did not answer within {self.timeout:g}s",
            )
        except httpx.ConnectError as e:
            return DeliveryResult(success=False, message=f"Connection error: {e}")
        except httpx.HTTPError as e:
            return DeliveryResult(success=False, message=f"HTTP error: {e}")

        elapsed_ms = (time.monotonic() - started) * 1000
        body = _json_object(response)

        if response.is_success:
            payload = body or {}
            return DeliveryResult(
                success=True,
                message=payload.get("message") or DEFAULT_SUCCESS_MESSAGE,
                payload=payload,
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )

        error = body.get("error") if body else None
        return DeliveryResult(
            success=False,
            message=error or f"Collector rejected scan (HTTP {response.status_code})",
            payload=body or {},
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

    async def check_reachable(self) -> bool:
        """Check whether the collector's host answers at all.

        Any HTTP response counts as reachable; only transport errors mean
        the network is down.
        """
        parts = urlsplit(self.collector_url)
        try:
            await self._client.head(
                f"{parts.scheme}://{parts.netloc}/",
                timeout=httpx.Timeout(5.0),
            )
            return True
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "DeliveryClient":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
