"""
Logging setup for pipeproc

Configures the ``pipeproc`` logger tree. Console output always goes to
stderr (or a given stream): stdout is reserved for relayed child output.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

from .config import LoggingConfig, parse_size

LOG_NAMESPACE = 'pipeproc'

# Handles are drained from caller threads as well as the waiting one
DETAILED_FORMAT = (
    '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] '
    '%(filename)s:%(lineno)d - %(message)s'
)
SIMPLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def resolve_level(level: Union[str, int]) -> int:
    """Turn a level name such as "debug" into its numeric value"""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    stream: Optional[TextIO] = None
) -> logging.Logger:
    """Install the console handler and, optionally, a rotating file handler.
    
    Calling it again only updates the level.
    """
    numeric_level = resolve_level(level)
    logger = logging.getLogger(LOG_NAMESPACE)
    logger.setLevel(numeric_level)
    
    if logger.handlers:
        for handler in logger.handlers:
            if isinstance(handler, RotatingFileHandler):
                logger.setLevel(min(numeric_level, logging.DEBUG))
            else:
                handler.setLevel(numeric_level)
        return logger
    
    console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
    logger.addHandler(console_handler)
    
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        
        # The file keeps everything, including drain and reap details
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        logger.addHandler(file_handler)
        logger.setLevel(min(numeric_level, logging.DEBUG))
    
    logger.debug(f"Logging initialized at {logging.getLevelName(numeric_level)}")
    return logger


def setup_logging_from_config(config: LoggingConfig, stream: Optional[TextIO] = None) -> logging.Logger:
    """Set up logging from the ``logging`` section of the configuration"""
    return setup_logging(
        level=config.level,
        log_file=config.file,
        max_bytes=parse_size(config.max_size),
        backup_count=config.backup_count,
        stream=stream
    )


def get_logger(name: str) -> logging.Logger:
    """Get a child logger with the given name"""
    return logging.getLogger(f'{LOG_NAMESPACE}.{name}')
