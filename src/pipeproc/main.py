#!/usr/bin/env python3
"""
pipeproc - Main Entry Point

Runs one command through a ProcessHandle and relays its captured output.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pipeproc import __version__
from pipeproc.process_control.process_handle import Capture, ProcessHandle
from pipeproc.utils.config import Config
from pipeproc.utils.error_handler import ProcessError, ProcessTimeoutError, SpawnError
from pipeproc.utils.logging_setup import setup_logging_from_config

EXIT_TIMEOUT = 124
EXIT_SPAWN_FAILED = 127

CAPTURE_CHOICES = {
    "none": Capture.NONE,
    "out": Capture.OUT,
    "err": Capture.ERR,
    "all": Capture.OUT | Capture.ERR,
}


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from file, or from the environment when no file is given"""
    if config_path is None:
        return Config.from_env()

    config_file = Path(config_path)
    if not config_file.exists():
        print(f"Configuration file not found: {config_path}", file=sys.stderr)
        sys.exit(2)

    try:
        return Config.load_from_file(config_file)
    except Exception as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        sys.exit(2)


def relay(stream, data: bytes) -> None:
    """Copy child output to one of our streams unchanged"""
    stream.flush()
    buffer = getattr(stream, "buffer", None)
    if buffer is None:
        stream.write(data.decode(errors="replace"))
    else:
        buffer.write(data)
        buffer.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipeproc",
        description="Run a command with captured output and a bounded wait"
    )
    parser.add_argument(
        "--config", "-c",
        help="Configuration file path (JSON)",
        default=None
    )
    parser.add_argument(
        "--timeout-ms", "-t",
        type=int,
        help="Give up (and kill the command) after this many milliseconds",
        default=None
    )
    parser.add_argument(
        "--poll-interval-ms",
        type=int,
        help="Delay between two status checks",
        default=None
    )
    parser.add_argument(
        "--capture",
        choices=sorted(CAPTURE_CHOICES),
        default="all",
        help="Output streams to relay (default: all)"
    )
    parser.add_argument(
        "--input", "-i",
        help="Text written to the command's stdin",
        default=None
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"pipeproc {__version__}"
    )
    parser.add_argument("command", help="Program to run")
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="Program arguments")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    try:
        config.validate()
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    setup_logging_from_config(config.logging)
    logger = logging.getLogger(__name__)

    capture = CAPTURE_CHOICES[args.capture]
    if args.input is not None:
        capture |= Capture.IN

    timeout_ms = args.timeout_ms if args.timeout_ms is not None else config.process.wait_timeout_ms

    with ProcessHandle(args.command, args.arguments, capture, config=config.process) as proc:
        try:
            proc.spawn()
        except SpawnError as e:
            print(f"pipeproc: {e.message}", file=sys.stderr)
            return EXIT_SPAWN_FAILED

        if args.input is not None and not proc.write(args.input):
            logger.warning("Input was not fully delivered")

        try:
            code = proc.wait(timeout_ms, args.poll_interval_ms)
        except ProcessTimeoutError as e:
            proc.kill()
            print(f"pipeproc: {e.message}", file=sys.stderr)
            code = EXIT_TIMEOUT
        except ProcessError as e:
            logger.error(f"Wait failed: {e.message}")
            return 1

        relay(sys.stdout, proc.read_all_standard_output_bytes())
        relay(sys.stderr, proc.read_all_standard_error_bytes())

    return code


if __name__ == "__main__":
    sys.exit(main())
