"""
Configuration management for pipeproc

Handles loading and validation of configuration from JSON files and environment variables.
"""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


ENV_PREFIX = "PIPEPROC_"

_SIZE_PATTERN = re.compile(r'^\s*(\d+)\s*([KMG]?B?)\s*$', re.IGNORECASE)
_SIZE_UNITS = {'': 1, 'B': 1, 'K': 1024, 'KB': 1024, 'M': 1024 ** 2, 'MB': 1024 ** 2,
               'G': 1024 ** 3, 'GB': 1024 ** 3}


@dataclass
class ProcessConfig:
    """Process handle defaults"""
    poll_interval_ms: int = 100
    wait_timeout_ms: Optional[int] = None  # None waits without bound
    read_grace_ms: int = 100
    read_chunk_size: int = 65536
    encoding: str = "utf-8"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = None
    max_size: str = "10MB"
    backup_count: int = 5


def parse_size(value: str) -> int:
    """Parse a human readable size such as '10MB' into bytes"""
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[unit.upper()]


def _env(name: str, default):
    return os.getenv(ENV_PREFIX + name, default)


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class Config:
    """Main configuration class"""
    process: ProcessConfig = field(default_factory=ProcessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    
    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        """Build configuration from a dictionary with environment variable override"""
        process_data = data.get('process', {})
        logging_data = data.get('logging', {})
        process_defaults = ProcessConfig()
        logging_defaults = LoggingConfig()
        
        process_config = ProcessConfig(
            poll_interval_ms=int(_env('POLL_INTERVAL_MS', process_data.get('poll_interval_ms', process_defaults.poll_interval_ms))),
            wait_timeout_ms=_optional_int(_env('WAIT_TIMEOUT_MS', process_data.get('wait_timeout_ms', process_defaults.wait_timeout_ms))),
            read_grace_ms=int(_env('READ_GRACE_MS', process_data.get('read_grace_ms', process_defaults.read_grace_ms))),
            read_chunk_size=int(_env('READ_CHUNK_SIZE', process_data.get('read_chunk_size', process_defaults.read_chunk_size))),
            encoding=_env('ENCODING', process_data.get('encoding', process_defaults.encoding))
        )
        
        logging_config = LoggingConfig(
            level=_env('LOG_LEVEL', logging_data.get('level', logging_defaults.level)),
            file=_env('LOG_FILE', logging_data.get('file', logging_defaults.file)) or None,
            max_size=_env('LOG_MAX_SIZE', logging_data.get('max_size', logging_defaults.max_size)),
            backup_count=int(_env('LOG_BACKUP_COUNT', logging_data.get('backup_count', logging_defaults.backup_count)))
        )
        
        return cls(process=process_config, logging=logging_config)
    
    @classmethod
    def load_from_file(cls, config_path: Path) -> 'Config':
        """Load configuration from JSON file with environment variable override"""
        config_path = Path(config_path)
        
        # Load environment variables from .env file if it exists
        env_file = config_path.parent / ".env"
        if env_file.exists():
            load_dotenv(env_file)
        
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        
        return cls.from_dict(data)
    
    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from defaults and environment variables only"""
        load_dotenv()
        return cls.from_dict({})
    
    def validate(self) -> bool:
        """Validate configuration values"""
        errors = []
        
        if self.process.poll_interval_ms <= 0:
            errors.append("Poll interval must be positive")
        
        if self.process.wait_timeout_ms is not None and self.process.wait_timeout_ms < 0:
            errors.append("Wait timeout must not be negative")
        
        if self.process.read_grace_ms < 0:
            errors.append("Read grace delay must not be negative")
        
        if self.process.read_chunk_size <= 0:
            errors.append("Read chunk size must be positive")
        
        try:
            "".encode(self.process.encoding)
        except LookupError:
            errors.append(f"Unknown encoding: {self.process.encoding}")
        
        if self.logging.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Unknown log level: {self.logging.level}")
        
        try:
            parse_size(self.logging.max_size)
        except ValueError:
            errors.append(f"Invalid log max size: {self.logging.max_size}")
        
        if self.logging.backup_count < 0:
            errors.append("Log backup count must not be negative")
        
        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")
        
        return True
