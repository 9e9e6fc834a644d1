"""Tests for structured logging configuration."""

import json
import logging
import sys

import pytest

from biomes.logging_config import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TextFormatter,
    configure_logging,
    get_logger,
)


@pytest.fixture
def restore_logging():
    """Undo configure_logging's changes to the root and biomes loggers."""
    root = logging.getLogger()
    biomes_logger = logging.getLogger("biomes")
    saved = (root.level, root.handlers[:], biomes_logger.level)
    yield
    for handler in root.handlers[:]:
        if handler not in saved[1]:
            handler.close()
    root.setLevel(saved[0])
    root.handlers[:] = saved[1]
    biomes_logger.setLevel(saved[2])


def make_record(name="biomes.loader", level=logging.INFO, msg="Client loaded", exc_info=None):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSON log formatter."""

    def test_format_basic(self):
        parsed = json.loads(JSONFormatter().format(make_record()))
        assert parsed["level"] == "INFO"
        assert parsed["msg"] == "Client loaded"
        assert parsed["logger"] == "biomes.loader"
        assert parsed["ts"].endswith("Z")
        assert "user_id" not in parsed

    def test_format_with_structured_fields(self):
        record = make_record()
        record.structured_fields = {"duration_seconds": 4.2, "retries": 0}
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["duration_seconds"] == 4.2
        assert parsed["retries"] == 0

    def test_format_includes_load_context(self):
        with LogContext(user_id=7, load_attempt=3):
            parsed = json.loads(JSONFormatter().format(make_record()))
        assert parsed["user_id"] == 7
        assert parsed["load_attempt"] == 3

    def test_format_with_exception(self):
        try:
            raise ValueError("registry unavailable")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(
            JSONFormatter().format(make_record(level=logging.ERROR, exc_info=exc_info))
        )
        assert parsed["exception"] == {"type": "ValueError", "message": "registry unavailable"}


class TestTextFormatter:
    """Test text log formatter."""

    def test_format_basic(self):
        output = TextFormatter().format(make_record())
        assert "[INFO]" in output
        assert "[loader]" in output
        assert output.endswith("Client loaded")

    def test_format_with_fields_and_context(self):
        record = make_record(level=logging.WARNING, msg="Progress appears to be stuck")
        record.structured_fields = {"stage": "connecting", "ticks": 31}
        with LogContext(user_id=7, load_attempt=2):
            output = TextFormatter().format(record)
        assert "[user:7] [attempt:2] Progress appears to be stuck" in output
        assert output.endswith("stage=connecting ticks=31")


class TestStructuredLogger:
    """Test StructuredLogger wrapper."""

    def test_fields_attached_to_record(self, caplog):
        logger = StructuredLogger("biomes.test")
        with caplog.at_level(logging.INFO, logger="biomes.test"):
            logger.info("Stage changed", stage="ready")
        assert caplog.records[-1].structured_fields == {"stage": "ready"}

    def test_levels(self, caplog):
        logger = StructuredLogger("biomes.test")
        with caplog.at_level(logging.DEBUG, logger="biomes.test"):
            logger.debug("d")
            logger.warning("w")
            logger.error("e", error_type="StallError")
        assert [r.levelname for r in caplog.records] == ["DEBUG", "WARNING", "ERROR"]
        assert caplog.records[-1].structured_fields == {"error_type": "StallError"}

    def test_disabled_level_skipped(self, caplog):
        logger = StructuredLogger("biomes.quiet")
        with caplog.at_level(logging.WARNING, logger="biomes.quiet"):
            logger.debug("noise", detail=1)
        assert not caplog.records

    def test_get_logger_caches(self):
        assert isinstance(get_logger("biomes.module"), StructuredLogger)
        assert get_logger("biomes.cached") is get_logger("biomes.cached")


class TestLogContext:
    """Test LogContext context manager."""

    def test_nested_contexts_override_and_restore(self):
        with LogContext(user_id=42, load_attempt=1):
            with LogContext(load_attempt=2):
                inner = json.loads(JSONFormatter().format(make_record()))
            outer = json.loads(JSONFormatter().format(make_record()))
        after = json.loads(JSONFormatter().format(make_record()))

        assert (inner["user_id"], inner["load_attempt"]) == (42, 2)
        assert (outer["user_id"], outer["load_attempt"]) == (42, 1)
        assert "user_id" not in after


class TestConfigureLogging:
    """Test logging configuration."""

    def test_configure_json(self, restore_logging):
        configure_logging(level="DEBUG", json_output=True)
        root = logging.getLogger()
        assert any(isinstance(h.formatter, JSONFormatter) for h in root.handlers)
        assert logging.getLogger("biomes").level == logging.DEBUG

    def test_configure_text(self, restore_logging):
        configure_logging(level="WARNING", json_output=False)
        root = logging.getLogger()
        assert any(isinstance(h.formatter, TextFormatter) for h in root.handlers)
        assert root.level == logging.WARNING

    def test_log_file_handler(self, restore_logging, tmp_path):
        log_file = tmp_path / "client.log"
        configure_logging(level="INFO", json_output=True, log_file=str(log_file))

        logging.getLogger("biomes.test").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written to file" in log_file.read_text()
