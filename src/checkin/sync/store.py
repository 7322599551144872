"""Durable key-value stores backing the pending scan queue.

Every store replaces a value atomically: after a crash, a key holds either
its previous value or its new one, never a partial write.
"""

import logging
import os
import sqlite3
import tempfile
from pathlib import Path
from typing import Protocol

from checkin.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class DurableStore(Protocol):
    """Get/set string values by key with atomic replacement."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def close(self) -> None: ...


class SqliteStore:
    """SQLite-backed key-value store.

    Each ``set`` is a single committed transaction, so readers (including a
    process restarted after a crash) see the old or the new value.
    """

    def __init__(self, db_path: Path) -> None:
        """Open or create the store.

        Args:
            db_path: Path to the SQLite database file

        Raises:
            PersistenceError: If the database cannot be opened
        """
        self.db_path = db_path
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._create_table()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open store {db_path}: {e}") from e

    def _create_table(self) -> None:
        """Create the key-value table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self._conn.commit()

    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key was never set.

        Raises:
            PersistenceError: If the read fails
        """
        try:
            cursor = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot read {key!r} from {self.db_path}: {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        """Replace the value for a key in one transaction.

        Raises:
            PersistenceError: If the write fails (nothing is changed)
        """
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot write {key!r} to {self.db_path}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


class JsonFileStore:
    """One file per key in a directory, replaced by write-then-swap.

    ``set`` writes a temporary file next to the target, fsyncs it and then
    ``os.replace``s it over the target. Leftover temporary files from an
    interrupted write are never read.
    """

    SUFFIX = ".json"
    TMP_PREFIX = ".tmp-"

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create store directory {directory}: {e}") from e

    def path_for(self, key: str) -> Path:
        """Return the file holding a key."""
        return self.directory / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

    def write_temp(self, key: str, value: str) -> Path:
        """Write and fsync a temporary file holding the new value.

        This is the first half of ``set``; the value is not visible under
        the key until ``swap`` is called.
        """
        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self.TMP_PREFIX}{key}-",
            dir=self.directory,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return Path(tmp_name)

    def swap(self, key: str, tmp_path: Path) -> None:
        """Atomically move a temporary file over the key's file.

        The directory is fsynced afterwards so the rename itself survives
        a power loss.
        """
        os.replace(tmp_path, self.path_for(key))
        self._sync_directory()

    def _sync_directory(self) -> None:
        # Directories cannot be opened for fsync on Windows
        if os.name != "posix":
            return
        dir_fd = os.open(self.directory, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

    def set(self, key: str, value: str) -> None:
        """Replace the value for a key.

        Raises:
            PersistenceError: If the write or swap fails (the previous value
                is left intact)
        """
        tmp_path: Path | None = None
        try:
            tmp_path = self.write_temp(key, value)
            self.swap(key, tmp_path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write {self.path_for(key)}: {e}") from e

    def close(self) -> None:
        """Remove temporary files left by interrupted writes."""
        for stale in self.directory.glob(f"{self.TMP_PREFIX}*"):
            try:
                stale.unlink()
            except OSError as e:
                logger.warning("Cannot remove stale temp file %s: %s", stale, e)


class MemoryStore:
    """In-memory store (nothing survives the process)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def close(self) -> None:
        pass


def open_store(backend: str, path: Path) -> DurableStore:
    """Open the store for a configured backend ("sqlite" or "file")."""
    if backend == "sqlite":
        return SqliteStore(path)
    if backend == "file":
        return JsonFileStore(path)
    raise ValueError(f"Unknown store backend: {backend}")
