"""
Process control components for pipeproc

Contains the process handle, argument marshalling, and one-shot runs.
"""

from .process_handle import Capture, ProcessHandle, TerminationOutcome, TerminationReason
from .runner import RunResult, run

__all__ = ["Capture", "ProcessHandle", "TerminationOutcome", "TerminationReason", "RunResult", "run"]
