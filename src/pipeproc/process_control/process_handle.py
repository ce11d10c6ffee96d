"""
Process Handle

Spawns an external program, drains its output pipes without deadlocking,
feeds its stdin, and waits for it to terminate under a bounded timeout.

Waiting is done by active polling on the calling thread: the child status is
checked without blocking, both output pipes are drained, and the thread
sleeps one poll interval before the next cycle. The OS offers no portable
blocking wait with a timeout, so the timeout granularity is bounded below by
the poll interval.
"""

import os
import signal
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum, Flag
from typing import Dict, Iterable, Optional, Tuple, Union

import psutil

from .arguments import build_argv, build_environment, format_env_entry
from ..output_handling.output_buffer import StreamBuffer
from ..utils.config import ProcessConfig
from ..utils.error_handler import (
    InvalidArgumentError,
    ProcessError,
    ProcessTimeoutError,
    SpawnError,
    UnknownTerminationError,
    WaitError,
    log_error,
)
from ..utils.logging_setup import get_logger

logger = get_logger('process_handle')


class Capture(Flag):
    """Streams whose data a process handle retains"""
    NONE = 0
    OUT = 1 << 1
    ERR = 1 << 2
    IN = 1 << 3


DEFAULT_CAPTURE = Capture.OUT | Capture.ERR | Capture.IN

# Python ignores SIGPIPE and SIGXFSZ, the child gets the default action back
_RESET_SIGNALS = tuple(
    getattr(signal, name) for name in ('SIGPIPE', 'SIGXFSZ')
    if hasattr(signal, name)
)


class TerminationReason(Enum):
    """Why a child stopped running"""
    EXITED = "exited"
    SIGNALED = "signaled"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TerminationOutcome:
    """Classified result of a child's termination"""
    reason: TerminationReason
    value: int  # exit code, terminating signal or stop signal


def classify_status(status: int) -> TerminationOutcome:
    """Classify a raw wait status"""
    if os.WIFEXITED(status):
        return TerminationOutcome(TerminationReason.EXITED, os.WEXITSTATUS(status))
    if os.WIFSIGNALED(status):
        return TerminationOutcome(TerminationReason.SIGNALED, os.WTERMSIG(status))
    if os.WIFSTOPPED(status):
        return TerminationOutcome(TerminationReason.STOPPED, os.WSTOPSIG(status))
    raise UnknownTerminationError(f"Impossible to identify reason for stop (status {status:#x})")


def _close_fd(fd: int) -> None:
    try:
        os.close(fd)
    except OSError as e:
        logger.debug(f"Error closing fd {fd}: {e}")


class ProcessHandle:
    """Handle on one external program and its three standard streams.

    The handle is idle until :meth:`spawn`, running until the child is reaped
    by :meth:`wait`, :meth:`interrupt` or :meth:`kill`, and idle again after
    that; output captured so far stays readable. Closing the handle (or letting
    it be collected) kills a child that is still running and closes every pipe.

    Example:
        with ProcessHandle("sh", ["-c", "echo hello"]) as proc:
            proc.spawn()
            code = proc.wait(timeout_ms=5000)
            output = proc.read_all_standard_output()
    """

    def __init__(self,
                 command: str,
                 arguments: Optional[Iterable[str]] = None,
                 capture: Capture = DEFAULT_CAPTURE,
                 config: Optional[ProcessConfig] = None):
        self.config = config or ProcessConfig()
        self._command = command
        self._arguments = list(arguments or [])
        self._environment: Dict[str, str] = dict(os.environ)
        self._capture = capture
        self._spawned = False
        self._termination: Optional[TerminationOutcome] = None

        # None means not running / not open
        self._pid: Optional[int] = None
        self._stdout: Optional[int] = None
        self._stderr: Optional[int] = None
        self._stdin: Optional[int] = None

        # Guards both output fds and both buffers, they are drained together
        self._stream_lock = threading.Lock()
        self._out_buffer = StreamBuffer(self.config.encoding)
        self._err_buffer = StreamBuffer(self.config.encoding)

    def __repr__(self) -> str:
        state = f"pid={self._pid}" if self._pid is not None else "idle"
        return f"<ProcessHandle {self._command!r} {state}>"

    def __enter__(self) -> 'ProcessHandle':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __del__(self):
        try:
            self.close()
        except Exception:
            # Nothing can be reported from a finalizer
            pass

    @property
    def command(self) -> str:
        return self._command

    @property
    def arguments(self) -> Tuple[str, ...]:
        return tuple(self._arguments)

    @property
    def environment(self) -> Dict[str, str]:
        return dict(self._environment)

    @property
    def capture(self) -> Capture:
        return self._capture

    @property
    def pid(self) -> Optional[int]:
        """Pid of the running child, None when nothing is running"""
        return self._pid

    @property
    def termination(self) -> Optional[TerminationOutcome]:
        """Outcome of the last reaped child"""
        return self._termination

    def add_argument(self, arg: str) -> None:
        """Append one argument; has no effect once spawned"""
        if self._spawned:
            logger.warning(f"Ignoring argument {arg!r}: {self._command!r} was already spawned")
            return
        self._arguments.append(arg)

    def set_env_var(self, name: str, value: str) -> None:
        """Set one environment variable for the child.

        Best effort: a name or value that cannot be formatted into a
        ``name=value`` entry is ignored, and so is any call after spawn.
        """
        if self._spawned:
            logger.warning(f"Ignoring environment variable {name!r}: {self._command!r} was already spawned")
            return
        try:
            entry = format_env_entry(name, value)
        except ValueError as e:
            logger.debug(f"Ignoring environment variable: {e}")
            return
        key, _, val = entry.partition('=')
        self._environment[key] = val

    def spawn(self) -> int:
        """Launch the program and return its pid.

        Creates the stdout, stderr and stdin pipes, starts the program with
        ``posix_spawnp`` (no shell) and switches the two output pipes to
        non-blocking mode. Stdin is closed right away unless it is captured.

        Raises:
            SpawnError: if a pipe or the process could not be created. Every
                fd opened on the way is closed and the handle stays idle.
        """
        if self._spawned:
            raise SpawnError(f"Process {self._command!r} was already spawned")

        try:
            argv = build_argv(self._command, self._arguments)
            env = build_environment(self._environment)
        except InvalidArgumentError as e:
            raise SpawnError(f"Failed to spawn {self._command!r}: {e.message}") from e

        try:
            with ExitStack() as child_ends, ExitStack() as parent_ends:
                out_read, out_write = os.pipe()
                parent_ends.callback(os.close, out_read)
                child_ends.callback(os.close, out_write)

                err_read, err_write = os.pipe()
                parent_ends.callback(os.close, err_read)
                child_ends.callback(os.close, err_write)

                in_read, in_write = os.pipe()
                parent_ends.callback(os.close, in_write)
                child_ends.callback(os.close, in_read)

                # A blocking read would stall the wait loop on an idle pipe
                os.set_blocking(out_read, False)
                os.set_blocking(err_read, False)

                file_actions = [
                    (os.POSIX_SPAWN_DUP2, in_read, 0),
                    (os.POSIX_SPAWN_DUP2, out_write, 1),
                    (os.POSIX_SPAWN_DUP2, err_write, 2),
                ]
                pid = os.posix_spawnp(
                    argv[0], argv, env,
                    file_actions=file_actions,
                    setsigdef=_RESET_SIGNALS,
                )

                # Success: keep the parent ends, the child ends still get closed
                parent_ends.pop_all()
        except OSError as e:
            error = SpawnError.from_os_error(f"Failed to spawn {self._command!r}", e)
            log_error(logger, error)
            raise error from e

        self._spawned = True
        self._pid = pid
        self._stdout = out_read
        self._stderr = err_read
        self._stdin = in_write
        logger.info(f"Spawned {self._command!r} with PID {pid}")

        if Capture.IN not in self._capture:
            self.close_write_channel()

        return pid

    def _drain(self, fd: Optional[int], buffer: StreamBuffer, keep: bool) -> int:
        """One non-blocking read from fd. Must be called with the stream lock held.

        Returns the number of bytes read; 0 means nothing available right now
        (or end of stream). Bytes of a stream that is not captured are read
        and dropped so the child never blocks on a full pipe.
        """
        if fd is None:
            return 0
        try:
            data = os.read(fd, self.config.read_chunk_size)
        except BlockingIOError:
            return 0
        if keep:
            buffer.append(data)
        return len(data)

    def _drain_stdout(self) -> int:
        return self._drain(self._stdout, self._out_buffer, Capture.OUT in self._capture)

    def _drain_stderr(self) -> int:
        return self._drain(self._stderr, self._err_buffer, Capture.ERR in self._capture)

    def wait(self, timeout_ms: Optional[int] = None, poll_interval_ms: Optional[int] = None) -> int:
        """Wait for the child to terminate and reap it.

        Stdin is closed first. Each poll cycle checks the child status without
        blocking and drains both output pipes; once the child is gone the
        pipes are drained until empty, so everything the child wrote is in the
        buffers when this returns.

        Args:
            timeout_ms: Time budget, rounded up to whole poll intervals.
                Defaults to the configured wait timeout; None waits without bound.
            poll_interval_ms: Sleep between two status checks. Defaults to
                the configured poll interval.

        Returns:
            The exit code, the number of the terminating signal, or the
            number of the stop signal (see :attr:`termination`).

        Raises:
            InvalidArgumentError: poll interval is not positive.
            ProcessTimeoutError: the budget ran out; the child keeps running.
            WaitError: no child is running or the OS status check failed.
            UnknownTerminationError: the wait status could not be classified.
        """
        self.close_write_channel()

        if poll_interval_ms is None:
            poll_interval_ms = self.config.poll_interval_ms
        if timeout_ms is None:
            timeout_ms = self.config.wait_timeout_ms

        if poll_interval_ms <= 0:
            raise InvalidArgumentError("Cycle duration has to be bigger than 0")
        if self._pid is None:
            raise WaitError(f"No running process to wait for ({self._command!r})")

        # Counting cycles avoids reading the clock on every iteration
        max_cycles = None
        if timeout_ms is not None:
            max_cycles = -(-max(timeout_ms, 0) // poll_interval_ms)

        cycles = 0
        while True:
            try:
                pid, status = os.waitpid(self._pid, os.WNOHANG)
            except OSError as e:
                error = WaitError.from_os_error(f"waitpid failed for PID {self._pid}", e)
                log_error(logger, error)
                raise error from e

            # Drain even if the child exited, its output may still sit in the pipes
            with self._stream_lock:
                self._drain_stdout()
                self._drain_stderr()

            if pid == 0:
                if max_cycles is not None and cycles >= max_cycles:
                    error = ProcessTimeoutError(
                        f"Process {self._pid} still running after {timeout_ms} ms")
                    log_error(logger, error)
                    raise error
                time.sleep(poll_interval_ms / 1000)
                cycles += 1
                continue

            with self._stream_lock:
                while self._drain_stdout():
                    pass
                while self._drain_stderr():
                    pass

            logger.debug(
                f"Reaped PID {self._pid} after {cycles} poll cycles, "
                f"{self._out_buffer.pending} stdout / {self._err_buffer.pending} stderr bytes buffered"
            )
            self._pid = None
            try:
                self._termination = classify_status(status)
            except UnknownTerminationError as e:
                log_error(logger, e)
                raise
            logger.info(
                f"{self._command!r} terminated: {self._termination.reason.value} "
                f"({self._termination.value})"
            )
            return self._termination.value

    def _read_all(self, name: str, raw: bool = False) -> Union[str, bytes]:
        with self._stream_lock:
            if name == 'stdout':
                fd, buffer, keep = self._stdout, self._out_buffer, Capture.OUT in self._capture
            else:
                fd, buffer, keep = self._stderr, self._err_buffer, Capture.ERR in self._capture

            if fd is not None:
                # Grace delay picks up output written right before the call
                time.sleep(self.config.read_grace_ms / 1000)
                try:
                    self._drain(fd, buffer, keep)
                except OSError as e:
                    logger.debug(f"Ignoring {name} drain error: {e}")

            if raw:
                return buffer.take_bytes()
            return buffer.take(final=self._pid is None)

    def read_all_standard_output(self) -> str:
        """Return and clear everything captured from stdout so far"""
        return self._read_all('stdout')

    def read_all_standard_error(self) -> str:
        """Return and clear everything captured from stderr so far"""
        return self._read_all('stderr')

    def read_all_standard_output_bytes(self) -> bytes:
        """Like read_all_standard_output, without decoding"""
        return self._read_all('stdout', raw=True)

    def read_all_standard_error_bytes(self) -> bytes:
        """Like read_all_standard_error, without decoding"""
        return self._read_all('stderr', raw=True)

    def write(self, data: Union[str, bytes]) -> bool:
        """Write data to the child's stdin.

        Returns True when the whole payload was written, False when stdin is
        closed or the write failed.
        """
        if self._stdin is None:
            return False

        if isinstance(data, str):
            data = data.encode(self.config.encoding, 'surrogateescape')

        try:
            written = os.write(self._stdin, data)
        except BrokenPipeError:
            logger.warning(f"Cannot write to {self._command!r}: stdin is closed by the child")
            return False
        except OSError as e:
            logger.warning(f"Error writing to {self._command!r}: {e}")
            return False

        return written == len(data)

    def close_write_channel(self) -> None:
        """Close the child's stdin, the child sees EOF. Safe to call repeatedly."""
        if self._stdin is not None:
            fd, self._stdin = self._stdin, None
            _close_fd(fd)

    def _signal_and_reap(self, sig: signal.Signals) -> None:
        if self._pid is None:
            return

        pid = self._pid
        logger.info(f"Sending {sig.name} to {self._command!r} (PID {pid})")
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            pass

        # Blocks without bound until the status changes to a final state
        while True:
            try:
                _, status = os.waitpid(pid, os.WUNTRACED | os.WCONTINUED)
            except ChildProcessError:
                break
            if (os.WIFEXITED(status) or os.WIFSIGNALED(status)
                    or os.WIFSTOPPED(status) or os.WCOREDUMP(status)):
                try:
                    self._termination = classify_status(status)
                except ProcessError as e:
                    log_error(logger, e)
                break

        self._pid = None

    def interrupt(self) -> None:
        """Send SIGINT and block until the child's status changes. No-op when idle."""
        self._signal_and_reap(signal.SIGINT)

    def kill(self) -> None:
        """Send SIGKILL and block until the child is gone. No-op when idle."""
        self._signal_and_reap(signal.SIGKILL)

    def exists(self) -> bool:
        """Whether the tracked pid still refers to a live OS process"""
        if self._pid is None:
            return False
        return psutil.pid_exists(self._pid)

    def close(self) -> None:
        """Close every pipe and kill the child if it is still running"""
        self.close_write_channel()

        with self._stream_lock:
            if self._stdout is not None:
                fd, self._stdout = self._stdout, None
                _close_fd(fd)
            if self._stderr is not None:
                fd, self._stderr = self._stderr, None
                _close_fd(fd)

        if self._pid is not None:
            logger.warning(f"{self._command!r} (PID {self._pid}) was still running, killing it")
            self.kill()
