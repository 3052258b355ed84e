"""Tests for structured logging setup."""

import json
import logging
import logging.config
import sys

from hubble.correlation import CorrelationRegistry, RequestIdFilter
from hubble.logging_config import JSONFormatter, build_logging_config, setup_logging
from hubble.models import GeneralLog


def make_record(msg="capture %s", args=("failed",), exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        "hubble.pipeline", logging.WARNING, "pipeline.py", 10, msg, args, exc_info
    )


class TestJSONFormatter:
    """Tests for the JSON log formatter."""

    def test_format(self):
        record = make_record()
        record.context = {"log_id": "abc"}

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "hubble.pipeline"
        assert data["message"] == "capture failed"
        assert data["context"] == {"log_id": "abc"}
        assert data["source"].endswith(":10")
        assert "request_id" not in data

    def test_exception_included(self):
        try:
            raise ValueError("broken")
        except ValueError:
            record = make_record("failed", None, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: broken" in data["exception"]


class TestRequestIdFilter:
    """Records emitted inside a captured request carry its root id."""

    def test_stamps_active_root(self):
        registry = CorrelationRegistry()
        token = registry.open()
        try:
            registry.register("root-1", GeneralLog(id="root-1"))
            record = make_record()
            assert RequestIdFilter().filter(record)
        finally:
            registry.close(token)

        data = json.loads(JSONFormatter().format(record))
        assert data["request_id"] == "root-1"

    def test_outside_request(self):
        record = make_record()
        RequestIdFilter().filter(record)

        assert record.request_id is None


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_dict_config(self, tmp_path, monkeypatch):
        captured = {}
        monkeypatch.setattr(logging.config, "dictConfig", captured.update)
        log_file = tmp_path / "logs" / "app.log"

        setup_logging(log_level="debug", log_file=str(log_file))

        assert log_file.parent.is_dir()
        assert captured["root"]["level"] == "DEBUG"
        assert captured["root"]["handlers"] == ["console", "file"]
        assert captured["handlers"]["file"]["filename"] == str(log_file)
        assert captured["loggers"]["aiosqlite"]["level"] == "WARNING"

    def test_env_defaults(self, tmp_path, monkeypatch):
        captured = {}
        monkeypatch.setattr(logging.config, "dictConfig", captured.update)
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "env.log"))

        setup_logging()

        assert captured["root"]["level"] == "WARNING"
        assert captured["handlers"]["file"]["filename"] == str(tmp_path / "env.log")

    def test_empty_log_file_is_console_only(self):
        config = build_logging_config("info", "")

        assert list(config["handlers"]) == ["console"]
        assert config["handlers"]["console"]["filters"] == ["request"]
        assert config["filters"]["request"]["()"] == "hubble.correlation.RequestIdFilter"
