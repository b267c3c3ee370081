"""Tests for structured logging and sync session context."""

import asyncio
import json
import logging
import sys

import pytest

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import (
    SyncContext,
    generate_session_id,
    get_context_dict,
    get_session_id,
    get_user_id,
)
from src.logging_config.performance import log_performance
from src.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


def _record(msg="test", level=logging.INFO, name="test", lineno=1, exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="test.py",
        lineno=lineno, msg=msg, args=(), exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLoggingConfig:
    """Tests for logging configuration dataclasses."""

    def test_default_config_values(self):
        config = LoggingConfig()
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.JSON
        assert config.include_caller is True
        assert config.slow_threshold_ms == 1000.0
        assert config.service_name == "notification-sync"
        assert "httpx" in config.quiet_loggers

    def test_custom_config(self):
        config = LoggingConfig(level=LogLevel.DEBUG, format=LogFormat.CONSOLE, service_name="cli")
        assert config.level == LogLevel.DEBUG
        assert config.format == LogFormat.CONSOLE
        assert config.service_name == "cli"

    def test_log_level_enum_values(self):
        assert LogLevel.WARNING.value == "WARNING"
        assert LogLevel("ERROR") is LogLevel.ERROR

    def test_log_format_enum_values(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"


class TestSyncContext:
    """Tests for contextvars-based session binding."""

    def test_generate_session_id_unique(self):
        ids = {generate_session_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(i) == 12 for i in ids)

    def test_context_sets_session_and_user(self):
        with SyncContext(user_id="user123", session_id="s-1"):
            assert get_session_id() == "s-1"
            assert get_user_id() == "user123"

    def test_auto_generates_session_id(self):
        with SyncContext(user_id="u") as ctx:
            assert ctx.session_id
            assert get_session_id() == ctx.session_id

    def test_context_cleanup_on_exit(self):
        with SyncContext(user_id="u", session_id="s"):
            pass
        assert get_session_id() == ""
        assert get_user_id() == ""

    def test_get_context_dict(self):
        with SyncContext(user_id="u1", session_id="s1", extra={"source": "push"}):
            ctx = get_context_dict()
        assert ctx == {"session_id": "s1", "user_id": "u1", "source": "push"}

    def test_context_dict_empty_outside(self):
        assert get_context_dict() == {}

    def test_bind_extra_context(self):
        with SyncContext(session_id="s") as ctx:
            ctx.bind(state="connected")
            assert get_context_dict()["state"] == "connected"
            assert ctx.extra == {"state": "connected"}

    def test_elapsed_ms(self):
        ctx = SyncContext()
        assert ctx.elapsed_ms >= 0

    def test_nested_contexts_restore_outer(self):
        with SyncContext(user_id="outer", session_id="o"):
            with SyncContext(user_id="inner", session_id="i"):
                assert get_user_id() == "inner"
            assert get_user_id() == "outer"
            assert get_session_id() == "o"

    @pytest.mark.asyncio
    async def test_tasks_inherit_context(self):
        async def read_session():
            return get_session_id()

        with SyncContext(session_id="task-ctx"):
            task = asyncio.create_task(read_session())
        assert await task == "task-ctx"


class TestStructuredFormatter:
    """Tests for JSON structured log formatting."""

    def test_formats_as_json(self):
        parsed = json.loads(StructuredFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert "timestamp" in parsed

    def test_includes_service_name(self):
        parsed = json.loads(StructuredFormatter(service_name="my-service").format(_record()))
        assert parsed["service"] == "my-service"

    def test_includes_caller_info(self):
        parsed = json.loads(StructuredFormatter(include_caller=True).format(_record(lineno=42)))
        assert parsed["line"] == 42
        assert "module" in parsed
        assert "function" in parsed

    def test_excludes_caller_when_disabled(self):
        parsed = json.loads(StructuredFormatter(include_caller=False).format(_record(lineno=42)))
        assert "line" not in parsed
        assert "function" not in parsed

    def test_includes_session_context(self):
        with SyncContext(user_id="user123", session_id="ctx-test"):
            parsed = json.loads(StructuredFormatter().format(_record()))
        assert parsed["session_id"] == "ctx-test"
        assert parsed["user_id"] == "user123"

    def test_formats_exception(self):
        try:
            raise ValueError("test error")
        except ValueError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["exception"]["type"] == "ValueError"
        assert "test error" in parsed["exception"]["message"]

    def test_includes_extra_fields(self):
        record = _record()
        record.duration_ms = 42.5
        record.notification_id = "n1"
        record.unrelated = "skip"
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["duration_ms"] == 42.5
        assert parsed["notification_id"] == "n1"
        assert "unrelated" not in parsed


class TestConsoleFormatter:
    """Tests for colored console log formatting."""

    def test_formats_readable_output(self):
        output = ConsoleFormatter().format(_record("hello", name="test.module"))
        assert "test.module" in output
        assert "hello" in output

    def test_includes_level_name(self):
        assert "WARNING" in ConsoleFormatter().format(_record(level=logging.WARNING))

    def test_includes_context_info(self):
        with SyncContext(session_id="abc"):
            output = ConsoleFormatter().format(_record())
        assert "session_id=abc" in output

    def test_has_color_codes(self):
        output = ConsoleFormatter().format(_record(level=logging.ERROR))
        assert "\033[31m" in output  # Red for ERROR


class TestConfigureLogging:
    """Tests for the configure_logging setup function."""

    def test_configures_root_logger(self, restore_root_logger):
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert len(restore_root_logger.handlers) == 1

    def test_json_format(self, restore_root_logger):
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_console_format(self, restore_root_logger):
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_sets_log_level(self, restore_root_logger):
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert restore_root_logger.level == logging.DEBUG

    def test_get_logger_returns_logger(self):
        logger = get_logger("test.module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "test.module"

    def test_quiets_noisy_loggers(self, restore_root_logger):
        configure_logging()
        assert logging.getLogger("httpx").level >= logging.WARNING

    def test_env_var_override_level(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("NOTIFY_LOG_LEVEL", "debug")
        configure_logging(LoggingConfig(level=LogLevel.ERROR))
        assert restore_root_logger.level == logging.DEBUG

    def test_env_var_override_format(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("NOTIFY_LOG_FORMAT", "CONSOLE")
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_invalid_env_var_ignored(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("NOTIFY_LOG_LEVEL", "chatty")
        configure_logging(LoggingConfig(level=LogLevel.WARNING))
        assert restore_root_logger.level == logging.WARNING


class TestPerformanceLogging:
    """Tests for the performance timing decorator."""

    def test_log_performance_sync(self):
        @log_performance(threshold_ms=10000)
        def fast_func():
            return 42

        assert fast_func() == 42

    @pytest.mark.asyncio
    async def test_log_performance_async(self):
        @log_performance(threshold_ms=10000)
        async def async_func():
            return "ok"

        assert await async_func() == "ok"

    def test_log_performance_preserves_name(self):
        @log_performance()
        def my_function():
            """My docstring."""

        assert my_function.__name__ == "my_function"
        assert my_function.__doc__ == "My docstring."

    def test_log_performance_with_exception(self, caplog):
        @log_performance(threshold_ms=10000, logger_name="perf.test")
        def failing_func():
            raise ValueError("test error")

        with caplog.at_level(logging.ERROR, logger="perf.test"):
            with pytest.raises(ValueError, match="test error"):
                failing_func()
        assert "failed after" in caplog.text

    @pytest.mark.asyncio
    async def test_log_performance_async_exception(self):
        @log_performance(threshold_ms=10000)
        async def async_failing():
            raise RuntimeError("async fail")

        with pytest.raises(RuntimeError, match="async fail"):
            await async_failing()

    def test_slow_call_warns(self, caplog):
        @log_performance(threshold_ms=0, logger_name="perf.test")
        def slow():
            return None

        with caplog.at_level(logging.WARNING, logger="perf.test"):
            slow()
        assert "Slow operation" in caplog.text
        assert caplog.records[-1].duration_ms >= 0
