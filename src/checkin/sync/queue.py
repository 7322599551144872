"""Persistent FIFO queue of scans waiting for delivery."""

import json
import logging
from typing import Iterable

from checkin.exceptions import PersistenceError
from checkin.scan.token import ScanRecord
from checkin.sync.store import DurableStore

logger = logging.getLogger(__name__)

PENDING_SCANS_KEY = "pendingScans"


class PendingQueue:
    """Ordered queue of ScanRecords persisted in a DurableStore.

    The whole queue is stored under one key as a JSON array and rewritten
    on every mutation. The stored value is authoritative: it is read on
    construction to recover scans left by a previous run, and the in-memory
    view only changes after a write succeeded.
    """

    def __init__(self, store: DurableStore, key: str = PENDING_SCANS_KEY) -> None:
        """Open the queue and load any persisted records.

        Args:
            store: Durable store holding the queue
            key: Store key for the queue contents

        Raises:
            PersistenceError: If the stored contents cannot be read
        """
        self.store = store
        self.key = key
        self._records: list[ScanRecord] = []
        self.reload()

    def reload(self) -> None:
        """Re-read the queue from the store.

        Raises:
            PersistenceError: If the stored value is not a JSON array
        """
        raw = self.store.get(self.key)
        if raw is None:
            self._records = []
            return

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Stored queue {self.key!r} is not valid JSON: {e}") from e
        if not isinstance(items, list):
            raise PersistenceError(f"Stored queue {self.key!r} is not a list")

        records = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                logger.warning("Skipping malformed queue entry: key=%s, index=%d", self.key, index)
                continue
            records.append(ScanRecord.from_payload(item))
        self._records = records

        if records:
            logger.info("Recovered pending scans: count=%d", len(records))

    def _persist(self, records: list[ScanRecord]) -> None:
        value = json.dumps([record.to_payload() for record in records])
        self.store.set(self.key, value)
        self._records = records

    def enqueue(self, record: ScanRecord) -> None:
        """Append a record and persist the queue before returning.

        Raises:
            PersistenceError: If the write fails (the queue is unchanged)
        """
        self._persist([*self._records, record])

    def drainable(self) -> list[ScanRecord]:
        """Return the queued records in FIFO order without removing them."""
        return list(self._records)

    def remove(self, record: ScanRecord) -> bool:
        """Remove the first queued record equal to ``record``.

        Returns:
            True if a record was removed.

        Raises:
            PersistenceError: If the write fails (the queue is unchanged)
        """
        try:
            index = self._records.index(record)
        except ValueError:
            return False
        self._persist(self._records[:index] + self._records[index + 1 :])
        return True

    def replace_all(self, remaining: Iterable[ScanRecord]) -> None:
        """Atomically replace the queue contents.

        Raises:
            PersistenceError: If the write fails (the queue is unchanged)
        """
        self._persist(list(remaining))

    def __len__(self) -> int:
        return len(self._records)
