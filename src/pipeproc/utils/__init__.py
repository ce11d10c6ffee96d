"""
Utility modules for pipeproc

Contains configuration management, logging setup, and the error taxonomy.
"""

from .config import Config, LoggingConfig, ProcessConfig
from .logging_setup import setup_logging, setup_logging_from_config, get_logger
from .error_handler import ErrorSeverity, ProcessError, log_error

__all__ = [
    "Config",
    "LoggingConfig",
    "ProcessConfig",
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "ErrorSeverity",
    "ProcessError",
    "log_error",
]
