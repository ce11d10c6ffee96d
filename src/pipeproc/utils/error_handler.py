"""
Error taxonomy for pipeproc

Defines the exceptions raised by process handles, their severity, and how
they are reported through logging.
"""

import logging
from enum import Enum
from typing import Optional


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"           # Expected condition, caller may simply retry
    MEDIUM = "medium"     # Caller error, nothing happened to the child
    HIGH = "high"         # OS-level failure, the operation did not complete
    CRITICAL = "critical" # State can no longer be trusted


# Severity -> log level used by log_error
SEVERITY_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class ProcessError(Exception):
    """Base class of every error raised by a process handle"""
    
    severity = ErrorSeverity.HIGH
    recoverable = False
    
    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.errno = errno
    
    @classmethod
    def from_os_error(cls, message: str, error: OSError) -> 'ProcessError':
        """Build an error carrying the OS-reported reason"""
        reason = error.strerror or str(error)
        return cls(f"{message}: {reason}", errno=error.errno)
    
    def to_dict(self) -> dict:
        """Convert to dictionary for logging"""
        return {
            'error_type': type(self).__name__,
            'severity': self.severity.value,
            'recoverable': self.recoverable,
            'message': self.message,
            'errno': self.errno,
        }


class SpawnError(ProcessError):
    """Pipe creation or process creation failed; the handle stays idle"""


class InvalidArgumentError(ProcessError, ValueError):
    """A caller supplied an argument the handle cannot work with"""
    
    severity = ErrorSeverity.MEDIUM


class ProcessTimeoutError(ProcessError, TimeoutError):
    """The wait budget ran out while the child was still running"""
    
    severity = ErrorSeverity.LOW
    recoverable = True


class WaitError(ProcessError):
    """The OS status check of the child failed"""


class UnknownTerminationError(ProcessError):
    """The OS reported a child status that cannot be classified"""
    
    severity = ErrorSeverity.CRITICAL


def log_error(logger: logging.Logger, error: ProcessError, context: str = "") -> None:
    """Log a process error at the level matching its severity"""
    level = SEVERITY_LOG_LEVELS.get(error.severity, logging.ERROR)
    prefix = f"{context}: " if context else ""
    logger.log(level, f"{prefix}{error.message}", extra={'process_error': error.to_dict()})
