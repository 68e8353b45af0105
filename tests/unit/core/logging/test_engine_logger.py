"""
Tests for EngineLogger.
"""

import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

import request_engine.core.logging.logger as logger_module
from request_engine.core.logging.config import LoggingConfig
from request_engine.core.logging.filters import clear_correlation_id, set_correlation_id
from request_engine.core.logging.logger import EngineLogger, configure_logging, get_logger


def read_json_lines(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


@pytest.fixture
def file_config(tmp_path):
    return LoggingConfig.create(
        level="DEBUG", format="json", enable_console=False,
        enable_file=True, file_path=str(tmp_path / "engine.log"),
        name="request_engine.test",
    )


@pytest.fixture(autouse=True)
def reset_shared_logger():
    """Общий логгер не переживает тест."""
    logger_module._default_logger = None
    yield
    if logger_module._default_logger is not None:
        logger_module._default_logger.close()
    logger_module._default_logger = None
    clear_correlation_id()


class TestEngineLogger:

    def test_defaults(self):
        logger = EngineLogger()
        try:
            assert logger.name == "request_engine.lifecycle"
            assert logger.logger.propagate is False
            assert logger.logger.level == logging.INFO
            assert len(logger.logger.handlers) == 1
        finally:
            logger.close()

    def test_custom_name(self):
        logger = EngineLogger(LoggingConfig(enable_console=False), name="custom.engine")
        try:
            assert logger.logger.name == "custom.engine"
            assert logger.logger.handlers == []
        finally:
            logger.close()

    def test_file_handler(self, file_config):
        logger = EngineLogger(file_config)
        try:
            assert any(isinstance(h, RotatingFileHandler) for h in logger.logger.handlers)
        finally:
            logger.close()

    def test_writes_fields(self, file_config):
        with EngineLogger(file_config) as logger:
            logger.info("Request completed", status_code=200, attempt=0)
            logger.debug("Debug line")
            logger.warning("Request retrying", attempt=1)

        records = read_json_lines(file_config.file_path)
        assert [r["message"] for r in records] == ["Request completed", "Debug line", "Request retrying"]
        assert records[0]["status_code"] == 200
        assert records[2]["level"] == "WARNING"

    def test_sensitive_fields_masked(self, file_config):
        with EngineLogger(file_config) as logger:
            logger.info("Request started", token="abc", url="https://x.io?password=hunter2")

        record = read_json_lines(file_config.file_path)[0]
        assert record["token"] == "***REDACTED***"
        assert "hunter2" not in record["url"]

    def test_level_filtering(self, tmp_path):
        config = LoggingConfig.create(
            level="ERROR", format="json", enable_console=False,
            enable_file=True, file_path=str(tmp_path / "e.log"),
        )
        with EngineLogger(config) as logger:
            logger.info("skipped")
            logger.error("kept")
            assert not logger.is_enabled_for(logging.INFO)

        assert [r["message"] for r in read_json_lines(config.file_path)] == ["kept"]

    def test_exception(self, file_config):
        with EngineLogger(file_config) as logger:
            try:
                raise ValueError("bad value")
            except ValueError:
                logger.exception("Request failed")

        record = read_json_lines(file_config.file_path)[0]
        assert record["level"] == "ERROR"
        assert "ValueError: bad value" in record["exception"]

    def test_correlation_id(self, file_config):
        set_correlation_id("batch-1")
        with EngineLogger(file_config) as logger:
            logger.info("from thread")
            logger.info("explicit", correlation_id="task-7")

        records = read_json_lines(file_config.file_path)
        assert records[0]["correlation_id"] == "batch-1"
        assert records[1]["correlation_id"] == "task-7"

    def test_extra_fields(self, tmp_path):
        config = LoggingConfig.create(
            format="json", enable_console=False, enable_file=True,
            file_path=str(tmp_path / "x.log"), extra_fields={"service": "billing"},
        )
        with EngineLogger(config) as logger:
            logger.info("hello")

        assert read_json_lines(config.file_path)[0]["service"] == "billing"

    def test_close_is_idempotent_and_silences(self, file_config):
        logger = EngineLogger(file_config)
        logger.close()
        logger.close()
        logger.info("after close")

        assert logger.logger.handlers == []
        assert not logger.is_enabled_for(logging.CRITICAL)

    def test_reinit_replaces_handlers(self, file_config):
        first = EngineLogger(file_config)
        second = EngineLogger(file_config)
        try:
            assert len(second.logger.handlers) == 1
            assert first.logger is second.logger
        finally:
            second.close()


class TestSharedLogger:

    def test_get_logger_same_instance(self):
        assert get_logger() is get_logger()

    def test_config_used_only_on_creation(self, file_config):
        first = get_logger(file_config)
        second = get_logger(LoggingConfig(level="ERROR"))
        assert second is first
        assert first.config is file_config

    def test_configure_logging_replaces(self, file_config):
        old = get_logger()
        new = configure_logging(file_config)

        assert new is not old
        assert get_logger() is new
        assert not old.is_enabled_for(logging.CRITICAL)
