"""
One-shot process runs

Convenience wrapper that spawns a program, waits for it, and returns its
exit status together with whatever output was captured.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .process_handle import Capture, ProcessHandle
from ..utils.config import ProcessConfig
from ..utils.error_handler import ProcessTimeoutError
from ..utils.logging_setup import get_logger

logger = get_logger('runner')


@dataclass
class RunResult:
    """Outcome of a one-shot run"""
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    
    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run(command: str,
        arguments: Optional[Iterable[str]] = None,
        capture: Capture = Capture.NONE,
        timeout_ms: Optional[int] = None,
        config: Optional[ProcessConfig] = None) -> RunResult:
    """Run a program to completion.
    
    Stdin is never captured, the child sees EOF right away. Output of
    streams not listed in ``capture`` is discarded.
    
    Raises:
        SpawnError: the program could not be started.
        ProcessTimeoutError: the child outlived ``timeout_ms``; it is killed
            before the error propagates.
        WaitError, UnknownTerminationError: as raised by ProcessHandle.wait.
    """
    capture = capture & (Capture.OUT | Capture.ERR)
    
    with ProcessHandle(command, arguments, capture, config=config) as proc:
        proc.spawn()
        
        stdout = proc.read_all_standard_output() if Capture.OUT in capture else ""
        stderr = proc.read_all_standard_error() if Capture.ERR in capture else ""
        
        try:
            exit_code = proc.wait(timeout_ms)
        except ProcessTimeoutError:
            logger.warning(f"Killing {command!r} after timeout")
            proc.kill()
            raise
        
        if Capture.OUT in capture:
            stdout += proc.read_all_standard_output()
        if Capture.ERR in capture:
            stderr += proc.read_all_standard_error()
    
    return RunResult(exit_code=exit_code, stdout=stdout, stderr=stderr)
