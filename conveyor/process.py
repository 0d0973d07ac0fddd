"""Child process execution with streamed output.

This module handles:
- Running git and docker commands as child processes
- Forwarding combined stdout/stderr to an output sink as it is produced
- Enforcing a deadline by killing the whole process group
- Keeping the tail of the output for error classification
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
from dataclasses import dataclass
from io import BufferedReader
from pathlib import Path

from conveyor.types import OutputSink

logger = logging.getLogger(__name__)

# Read size for forwarding child output (bytes)
READ_CHUNK_SIZE = 4096

# Amount of trailing output kept for error messages (bytes)
OUTPUT_TAIL_SIZE = 64 * 1024


class ProcessError(Exception):
    """Raised when a child process cannot be run or exits non-zero."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        output: str = "",
        code: str = "process_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output
        self.code = code


class ProcessTimeoutError(ProcessError):
    """Raised when a child process outlives its deadline."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message, exit_code=-1, output=output, code="timeout")


@dataclass
class CommandResult:
    """Result of a completed child process.

    Attributes:
        command: The command that was executed.
        exit_code: Process exit code.
        output: Trailing combined output, decoded.
    """

    command: str
    exit_code: int
    output: str


def _kill_group(proc: subprocess.Popen[bytes]) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def run_command(
    cmd: list[str],
    sink: OutputSink,
    cwd: Path | None = None,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command, streaming its combined output to a sink.

    The child runs in its own session so that a deadline kills every
    process it spawned, not just the direct child.

    Args:
        cmd: Command as list of strings.
        sink: Stream receiving stdout and stderr as they are produced.
        cwd: Working directory for the child.
        timeout: Deadline in seconds (None = no deadline).
        env: Full environment for the child (inherits when None).

    Returns:
        CommandResult for a zero exit status.

    Raises:
        ProcessError: If the command cannot start or exits non-zero.
        ProcessTimeoutError: If the deadline expires.
    """
    cmd_str = shlex.join(cmd)
    logger.debug("Executing: %s (cwd=%s)", cmd_str, cwd)

    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        raise ProcessError(
            f"Failed to execute {cmd[0]}: {e}",
            code="execution_error",
        ) from e

    # Always set: stdout is a pipe
    stdout: BufferedReader = proc.stdout  # type: ignore[assignment]
    timed_out = threading.Event()

    def _expire() -> None:
        timed_out.set()
        _kill_group(proc)

    timer: threading.Timer | None = None
    if timeout is not None:
        timer = threading.Timer(timeout, _expire)
        timer.daemon = True
        timer.start()

    tail = bytearray()
    try:
        while chunk := stdout.read1(READ_CHUNK_SIZE):
            sink.write(chunk)
            sink.flush()
            tail.extend(chunk)
            if len(tail) > OUTPUT_TAIL_SIZE:
                del tail[: len(tail) - OUTPUT_TAIL_SIZE]
        exit_code = proc.wait()
    except BaseException:
        _kill_group(proc)
        proc.wait()
        raise
    finally:
        if timer is not None:
            timer.cancel()
        stdout.close()

    output = tail.decode("utf-8", errors="replace")

    if timed_out.is_set():
        logger.error("%s timed out after %s seconds", cmd_str, timeout)
        raise ProcessTimeoutError(
            f"{cmd[0]} timed out after {timeout} seconds",
            output=output,
        )

    if exit_code != 0:
        logger.debug("%s exited with %d", cmd_str, exit_code)
        raise ProcessError(
            f"{cmd_str} failed with exit code {exit_code}",
            exit_code=exit_code,
            output=output,
        )

    return CommandResult(command=cmd_str, exit_code=exit_code, output=output)


__all__ = [
    "CommandResult",
    "ProcessError",
    "ProcessTimeoutError",
    "run_command",
]
