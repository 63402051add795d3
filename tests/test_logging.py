"""Tests for logging configuration and utilities."""

import json
import logging
import os
import sys
import time

import pytest

from cronkeeper.logging import (
    ComponentFormatter,
    JSONLHandler,
    configure_logging,
    prune_old_logs,
    record_extras,
)


def _record(name: str = "cronkeeper.scheduling.runner", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name, logging.INFO, __file__, 1, "schedule_reloaded", (), None
    )
    record.__dict__.update(extra)
    return record


@pytest.fixture
def restore_root_logging():
    """configure_logging replaces root handlers; put them back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestRecordExtras:
    def test_collects_extra_fields(self):
        record = _record(**{"schedule.channel_id": "general", "file.path": "/x"})
        assert record_extras(record) == {
            "schedule.channel_id": "general",
            "file.path": "/x",
        }

    def test_plain_record_has_no_extras(self):
        assert record_extras(_record()) == {}


class TestComponentFormatter:
    """Tests for ComponentFormatter."""

    def test_extracts_component(self):
        formatter = ComponentFormatter("%(component)s | %(message)s")
        assert formatter.format(_record()) == "scheduling | schedule_reloaded"

    def test_non_cronkeeper_logger(self):
        formatter = ComponentFormatter("%(component)s | %(message)s")
        assert formatter.format(_record(name="watchdog.observers")) == (
            "watchdog | schedule_reloaded"
        )

    def test_appends_extras(self):
        formatter = ComponentFormatter("%(component)s | %(message)s")
        record = _record(**{"schedule.channel_id": "general", "schedule.job_count": 2})
        assert formatter.format(record) == (
            "scheduling | schedule_reloaded "
            "schedule.channel_id=general schedule.job_count=2"
        )


class TestJSONLHandler:
    """Tests for JSONLHandler."""

    def test_writes_structured_entry(self, tmp_path):
        logs_dir = tmp_path / "logs"
        handler = JSONLHandler(logs_dir)
        try:
            handler.emit(_record(**{"schedule.channel_id": "general"}))
        finally:
            handler.close()

        [log_file] = list(logs_dir.glob("*.jsonl"))
        entry = json.loads(log_file.read_text().strip())
        assert entry["level"] == "INFO"
        assert entry["component"] == "scheduling"
        assert entry["logger"] == "cronkeeper.scheduling.runner"
        assert entry["message"] == "schedule_reloaded"
        assert entry["extra"] == {"schedule.channel_id": "general"}

    def test_includes_exception(self, tmp_path):
        logs_dir = tmp_path / "logs"
        handler = JSONLHandler(logs_dir)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        try:
            handler.emit(record)
        finally:
            handler.close()

        [log_file] = list(logs_dir.glob("*.jsonl"))
        entry = json.loads(log_file.read_text().strip())
        assert "RuntimeError: boom" in entry["exception"]


class TestPruneOldLogs:
    """Tests for prune_old_logs function."""

    def test_deletes_old_files(self, tmp_path):
        old_log = tmp_path / "2024-01-01.jsonl"
        old_log.write_text('{"test": "old"}\n')
        old_time = time.time() - (10 * 24 * 60 * 60)
        os.utime(old_log, (old_time, old_time))

        recent_log = tmp_path / "2024-01-10.jsonl"
        recent_log.write_text('{"test": "recent"}\n')

        assert prune_old_logs(tmp_path, retention_days=7) == 1
        assert not old_log.exists()
        assert recent_log.exists()

    def test_ignores_other_files(self, tmp_path):
        old_txt = tmp_path / "old.txt"
        old_txt.write_text("old text")
        old_time = time.time() - (10 * 24 * 60 * 60)
        os.utime(old_txt, (old_time, old_time))

        assert prune_old_logs(tmp_path, retention_days=7) == 0
        assert old_txt.exists()

    def test_handles_nonexistent_directory(self, tmp_path):
        assert prune_old_logs(tmp_path / "nope") == 0


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_explicit_level(self, restore_root_logging):
        configure_logging(level="DEBUG")
        assert restore_root_logging.level == logging.DEBUG

    def test_level_from_env(self, restore_root_logging, monkeypatch):
        monkeypatch.setenv("CRONKEEPER_LOG_LEVEL", "warning")
        configure_logging()
        assert restore_root_logging.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root_logging):
        configure_logging(level="LOUD")
        assert restore_root_logging.level == logging.INFO

    def test_log_to_file(self, restore_root_logging, cronkeeper_home):
        configure_logging(level="INFO", log_to_file=True)
        assert any(isinstance(h, JSONLHandler) for h in restore_root_logging.handlers)
        logging.getLogger("cronkeeper.test").info("hello", extra={"a.b": 1})
        for handler in restore_root_logging.handlers:
            handler.flush()
        [log_file] = list((cronkeeper_home / "logs").glob("*.jsonl"))
        assert '"hello"' in log_file.read_text()

    def test_rich_handler(self, restore_root_logging):
        from rich.logging import RichHandler

        configure_logging(use_rich=True)
        assert any(isinstance(h, RichHandler) for h in restore_root_logging.handlers)
