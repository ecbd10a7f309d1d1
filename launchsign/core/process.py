"""Subprocess supervision for external signing tools.

A child that writes more than the OS pipe buffer to stdout or stderr blocks
until someone reads it. run_process() therefore drains both pipes on
dedicated reader threads while the calling thread waits for the exit
status, and joins both readers before reporting it.
"""

from __future__ import annotations

import codecs
import logging
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import IO, Optional, Sequence

from launchsign.core.config import ProcessConfig
from launchsign.core.errors import SigningFailedError

logger = logging.getLogger(__name__)


class ProcessStatus(str, Enum):
    EXITED = "exited"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ProcessResult:
    """Result of running an external command to completion."""

    status: ProcessStatus
    exit_code: int
    execution_time_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == ProcessStatus.EXITED and self.exit_code == 0


def _pump(stream: IO[bytes], sink: Optional[IO[str]], chunk_size: int) -> None:
    """Copy a child's pipe to a text sink until EOF; drop it if sink is None."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while True:
            chunk = stream.read1(chunk_size)
            if not chunk:
                break
            if sink is not None:
                sink.write(decoder.decode(chunk))
        if sink is not None:
            sink.write(decoder.decode(b"", final=True))
            sink.flush()
    finally:
        stream.close()


def run_process(
    args: Sequence[str],
    cwd: Optional[str] = None,
    config: ProcessConfig = ProcessConfig(),
    stdout: Optional[IO[str]] = None,
    stderr: Optional[IO[str]] = None,
) -> ProcessResult:
    """Run a command, forwarding its output, and wait for it to finish.

    Args:
        args: Executable followed by its arguments.
        cwd: Working directory for the child.
        config: verbose controls stdout forwarding; timeout_seconds bounds
            the wait.
        stdout: Destination for the child's stdout in verbose mode.
            Default: sys.stdout at call time.
        stderr: Destination for the child's stderr. Default: sys.stderr.

    Raises:
        SigningFailedError: The command could not be launched.
    """
    out_sink = (stdout or sys.stdout) if config.verbose else None
    err_sink = stderr or sys.stderr

    start_time = time.monotonic()
    try:
        proc = subprocess.Popen(
            list(args),
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except (OSError, ValueError) as e:
        raise SigningFailedError(f"Unable to launch {args[0] if args else '<empty command>'}") from e

    readers = [
        threading.Thread(
            target=_pump, args=(proc.stdout, out_sink, config.chunk_size), daemon=True
        ),
        threading.Thread(
            target=_pump, args=(proc.stderr, err_sink, config.chunk_size), daemon=True
        ),
    ]
    for reader in readers:
        reader.start()

    status = ProcessStatus.EXITED
    try:
        exit_code = proc.wait(timeout=config.timeout_seconds)
    except subprocess.TimeoutExpired:
        logger.warning(
            "%s did not finish within %ss; killing it", args[0], config.timeout_seconds
        )
        proc.kill()
        exit_code = proc.wait()
        status = ProcessStatus.TIMEOUT
    finally:
        for reader in readers:
            reader.join()

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    logger.debug("%s exited with %d after %d ms", args[0], exit_code, elapsed_ms)
    return ProcessResult(status=status, exit_code=exit_code, execution_time_ms=elapsed_ms)
