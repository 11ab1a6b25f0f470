"""Tests for settings validation and the structured logging helpers."""

import json
import logging
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from overview import logging_utils
from overview.config import Settings
from overview.logging_utils import JsonFormatter, RedactingFilter, TextFormatter, get_logger, redact, timed


def make_record(msg, *args, **extra):
    record = logging.LogRecord("overview.test", logging.INFO, __file__, 1, msg, args, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestSettings:
    def test_defaults(self, tmp_path):
        cfg = Settings(data_dir=tmp_path)
        assert cfg.db_path == tmp_path / "overview.db"
        assert cfg.tzinfo == ZoneInfo("UTC")
        assert cfg.untitled_label == "Unknown"
        assert cfg.clip_final_interval is True

    def test_years_span_first_to_last(self):
        assert Settings(first_year=2019, last_year=2021).years == [2019, 2020, 2021]
        assert Settings(first_year=2021, last_year=2019).years == [2021]

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("OVERVIEW_TIMEZONE", "Asia/Tokyo")
        monkeypatch.setenv("OVERVIEW_SUMMARY_MAX_WORKERS", "4")
        cfg = Settings()
        assert cfg.tzinfo == ZoneInfo("Asia/Tokyo")
        assert cfg.summary_max_workers == 4

    def test_directories_are_created_on_request(self, tmp_path):
        cfg = Settings(data_dir=tmp_path / "data", log_dir=tmp_path / "data" / "logs")
        assert not (tmp_path / "data").exists()
        cfg.ensure_dirs()
        assert (tmp_path / "data" / "logs").is_dir()

    def test_unknown_zone_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(timezone="Mars/Olympus_Mons")

    def test_workers_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(summary_max_workers=0)


class TestRedaction:
    def test_redact(self):
        assert redact("share with jane.doe@example.com") == "share with ***@***"
        assert redact("Bearer ya29.abcdefghijklmnopqrstuvwxyz") == "Bearer ***TOKEN***"

    def test_filter_redacts_message_args_and_extras(self):
        record = make_record("calendar %s", "jane@example.com", calendar_id="jane@example.com", ids=["a@b.io", 3])
        assert RedactingFilter().filter(record)
        assert record.getMessage() == "calendar ***@***"
        assert record.calendar_id == "***@***"
        assert record.ids == ["***@***", 3]

    def test_disabled_filter_passes_through(self):
        record = make_record("calendar jane@example.com")
        RedactingFilter(enabled=False).filter(record)
        assert record.getMessage() == "calendar jane@example.com"


class TestFormatters:
    def test_json_includes_extras(self):
        payload = json.loads(JsonFormatter().format(make_record("summarizer.tree_built", buckets=12, ref=object())))
        assert payload["message"] == "summarizer.tree_built"
        assert payload["level"] == "INFO"
        assert payload["buckets"] == 12
        assert payload["ref"].startswith("<object")

    def test_text_includes_extras(self):
        line = TextFormatter().format(make_record("cli.sync.calendar_synced", items=3))
        assert " | INFO    | overview.test | cli.sync.calendar_synced | items=3" in line


class TestTimed:
    def test_logs_elapsed_time_and_fields(self, caplog):
        log = logging.getLogger("overview.test.timed")
        with caplog.at_level(logging.DEBUG, logger="overview.test.timed"):
            with timed(log, "summarizer.tree_built", calendars=1) as fields:
                fields["buckets"] = 12
        record = next(r for r in caplog.records if r.getMessage() == "summarizer.tree_built")
        assert record.levelno == logging.DEBUG
        assert record.calendars == 1
        assert record.buckets == 12
        assert record.elapsed_ms >= 0

    def test_logs_even_when_the_block_raises(self, caplog):
        log = logging.getLogger("overview.test.timed")
        with caplog.at_level(logging.DEBUG, logger="overview.test.timed"):
            with pytest.raises(RuntimeError):
                with timed(log, "summarizer.tree_failed"):
                    raise RuntimeError("boom")
        assert any(r.getMessage() == "summarizer.tree_failed" for r in caplog.records)


class TestGetLogger:
    def test_does_not_install_handlers(self, monkeypatch):
        monkeypatch.setattr(logging_utils, "_configured", False)
        root = logging.getLogger()
        before = list(root.handlers)
        log = get_logger("overview.test.plain")
        assert log.name == "overview.test.plain"
        assert root.handlers == before
        assert logging_utils._configured is False
