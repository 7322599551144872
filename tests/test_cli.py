"""Tests for the check-in CLI."""

import json

import pytest
from typer.testing import CliRunner

from checkin import __version__
from checkin.cli import app
from checkin.config import get_settings
from checkin.scan.token import ScanRecord, parse_payload
from checkin.sync.queue import PendingQueue
from checkin.sync.store import SqliteStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the CLI at an empty data directory."""
    monkeypatch.setenv("CHECKIN_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("CHECKIN_COLLECTOR_URL", "https://collector.test/webhook/scan-qr")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class TestCli:
    """Tests for top-level commands."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status_with_no_store(self):
        """A fresh station reports an empty queue."""
        result = runner.invoke(app, ["status", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["pending"] == 0
        assert data["collector_url"] == "https://collector.test/webhook/scan-qr"

    def test_status_counts_pending_scans(self, isolated_settings):
        store = SqliteStore(isolated_settings / "queue.db")
        PendingQueue(store).enqueue(ScanRecord.capture(parse_payload("EVENT:E1|LEAD:L1|HASH:H1")))
        store.close()

        result = runner.invoke(app, ["status", "--json"])

        assert json.loads(result.output)["pending"] == 1


class TestQueueCommands:
    """Tests for the queue subcommands."""

    def test_list_empty(self):
        result = runner.invoke(app, ["queue", "list"])

        assert result.exit_code == 0
        assert "No scans pending" in result.output

    def test_list_does_not_create_a_store(self, isolated_settings):
        """Listing on a fresh station leaves the data directory untouched."""
        result = runner.invoke(app, ["queue", "list", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == []
        assert not (isolated_settings / "queue.db").exists()

    def test_list_json_shows_collector_payloads(self, isolated_settings):
        record = ScanRecord.capture(
            parse_payload("EVENT:E1|LEAD:L1|HASH:H1"),
            scanned_at="2026-05-01T10:00:00.000Z",
        )
        store = SqliteStore(isolated_settings / "queue.db")
        PendingQueue(store).enqueue(record)
        store.close()

        result = runner.invoke(app, ["queue", "list", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == [record.to_payload()]


class TestConfigCommands:
    """Tests for the config subcommands."""

    def test_show_json(self, monkeypatch):
        monkeypatch.setenv("CHECKIN_DEDUP_WINDOW", "5")
        get_settings.cache_clear()

        result = runner.invoke(app, ["config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["dedup_window"] == 5.0
        assert data["store_backend"] == "sqlite"

    def test_show_human_readable(self):
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "collector_url: https://collector.test/webhook/scan-qr" in result.output

    def test_set_prints_environment_variable(self):
        result = runner.invoke(app, ["config", "set", "dedup_window", "5"])

        assert result.exit_code == 0
        assert "CHECKIN_DEDUP_WINDOW=5" in result.output

    def test_set_unknown_key(self):
        result = runner.invoke(app, ["config", "set", "colour", "blue"])

        assert result.exit_code == 1
        assert "Unknown key" in result.output
