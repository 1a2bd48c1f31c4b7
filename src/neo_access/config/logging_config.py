"""Centralized logging configuration for neo-access.

Provides consistent, configurable logging with environment-based control
over verbosity and log levels. Audit events are written to their own logger
(``neo_access.audit``) so operators can route them separately.
"""

import logging
import logging.config
import os
from enum import Enum


class LogLevel(str, Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogVerbosity(str, Enum):
    """Log verbosity modes."""
    QUIET = "QUIET"      # Only errors and critical
    NORMAL = "NORMAL"    # Warnings and above
    VERBOSE = "VERBOSE"  # Info level logging
    DEBUG = "DEBUG"      # Full debug logging


class LogFormat(str, Enum):
    """Log format options."""
    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"


AUDIT_LOGGER_NAME = "neo_access.audit"

_FORMATS = {
    LogFormat.SIMPLE: "%(asctime)s - %(levelname)s - %(message)s",
    LogFormat.DETAILED: "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
    LogFormat.JSON: '{"time":"%(asctime)s","level":"%(levelname)s","module":"%(name)s","message":"%(message)s"}',
}


def get_log_level_from_verbosity(verbosity: str) -> str:
    """Map verbosity mode to log level."""
    verbosity_map = {
        LogVerbosity.QUIET: LogLevel.ERROR.value,
        LogVerbosity.NORMAL: LogLevel.WARNING.value,
        LogVerbosity.VERBOSE: LogLevel.INFO.value,
        LogVerbosity.DEBUG: LogLevel.DEBUG.value,
    }
    try:
        return verbosity_map[LogVerbosity(verbosity.upper())]
    except ValueError:
        return LogLevel.WARNING.value


class LoggingConfig:
    """Centralized logging configuration manager."""

    # Modules that should only log errors
    ERROR_ONLY_MODULES = [
        "asyncpg",
        "redis",
        "httpx",
        "httpcore",
        "asyncio",
    ]

    @classmethod
    def build(cls) -> dict:
        """Build the dictConfig mapping from environment variables."""
        log_verbosity = os.getenv("LOG_VERBOSITY", "NORMAL").upper()
        log_format = os.getenv("LOG_FORMAT", LogFormat.SIMPLE.value).lower()
        explicit_level = os.getenv("LOG_LEVEL")

        effective_log_level = (
            explicit_level.upper() if explicit_level else get_log_level_from_verbosity(log_verbosity)
        )
        try:
            format_string = _FORMATS[LogFormat(log_format)]
        except ValueError:
            format_string = _FORMATS[LogFormat.SIMPLE]

        logging_config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": format_string,
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "audit": {
                    "format": "%(asctime)s - AUDIT - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": effective_log_level,
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
                "audit_console": {
                    "class": "logging.StreamHandler",
                    "level": "INFO",
                    "formatter": "audit",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": effective_log_level,
                "handlers": ["console"],
            },
            "loggers": {
                AUDIT_LOGGER_NAME: {
                    "level": "INFO",
                    "handlers": ["audit_console"],
                    "propagate": False,
                },
            },
        }

        for module in cls.ERROR_ONLY_MODULES:
            logging_config["loggers"][module] = {
                "level": "ERROR",
                "handlers": ["console"],
                "propagate": False,
            }

        return logging_config

    @classmethod
    def configure(cls) -> None:
        """Configure logging based on environment variables."""
        config = cls.build()
        logging.config.dictConfig(config)

        logger = logging.getLogger(__name__)
        logger.debug(f"Logging configured: level={config['root']['level']}")

    @classmethod
    def set_module_level(cls, module_name: str, level: str) -> None:
        """Set log level for a specific module."""
        logging.getLogger(module_name).setLevel(getattr(logging, level.upper()))


def setup_logging() -> None:
    """Setup logging configuration from environment variables.

    Runs on package import; call again after changing LOG_* variables.
    """
    LoggingConfig.configure()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name."""
    return logging.getLogger(name)
