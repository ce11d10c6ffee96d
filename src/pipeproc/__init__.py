"""
pipeproc - Subprocess handles with non-blocking capture

Launches external programs, captures their standard output and error without
deadlocking, feeds their standard input, and waits for them under a bounded
timeout.
"""

__version__ = "1.0.0"

from .process_control.process_handle import (
    Capture,
    ProcessHandle,
    TerminationOutcome,
    TerminationReason,
)
from .process_control.runner import RunResult, run
from .utils.error_handler import (
    InvalidArgumentError,
    ProcessError,
    ProcessTimeoutError,
    SpawnError,
    UnknownTerminationError,
    WaitError,
)

__all__ = [
    "Capture",
    "ProcessHandle",
    "TerminationOutcome",
    "TerminationReason",
    "RunResult",
    "run",
    "ProcessError",
    "SpawnError",
    "InvalidArgumentError",
    "ProcessTimeoutError",
    "WaitError",
    "UnknownTerminationError",
]
