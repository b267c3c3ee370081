"""Structured Logging & Session Context.

Provides structured JSON logging, session context binding,
and performance timing for the notification sync engine.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import SyncContext, generate_session_id
from src.logging_config.performance import log_performance
from src.logging_config.setup import configure_logging, get_logger

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "SyncContext",
    "configure_logging",
    "generate_session_id",
    "get_logger",
    "log_performance",
]
