"""Signer protocol and its two implementations.

CommandSigner runs an external signing tool (osslsigncode, signtool,
jsign...) as a subprocess. CallbackSigner runs an in-process routine.
The convergence loop depends on the Signer interface only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

from launchsign.core.config import ProcessConfig
from launchsign.core.errors import ConfigError, SigningFailedError
from launchsign.core.process import ProcessStatus, run_process


SigningCallback = Callable[[Path, Path], Optional[int]]


@runtime_checkable
class Signer(Protocol):
    """Protocol for signing operations.

    OCP: new kinds of signer implement this protocol.
    """

    def sign(self, source: Path, target: Path) -> int:
        """Sign source, producing target, and return an exit status.

        source and target are the same path unless the controller has
        redirected the signer's input to a working copy. 0 means success.
        """
        ...


@dataclass
class CommandSigner:
    """Sign by running a command line.

    input_index is the position in command of the argument naming the file
    the tool reads. When the controller signs from a working copy, that
    argument is swapped for the copy's path; nothing else is rewritten.
    """

    command: Sequence[str]
    input_index: Optional[int] = None
    cwd: Optional[Path] = None
    config: ProcessConfig = field(default_factory=ProcessConfig)

    def __post_init__(self) -> None:
        self.command = tuple(self.command)
        if not self.command:
            raise ConfigError("Signing command must not be empty")
        if self.input_index is not None and not 0 < self.input_index < len(self.command):
            raise ConfigError(f"input_index {self.input_index} is outside the command")

    def command_for(self, source: Path) -> list[str]:
        """The argument vector to run when signing from source."""
        args = list(self.command)
        if self.input_index is not None:
            args[self.input_index] = str(source)
        return args

    def sign(self, source: Path, target: Path) -> int:
        result = run_process(
            self.command_for(source),
            cwd=str(self.cwd) if self.cwd is not None else None,
            config=self.config,
        )
        if result.status == ProcessStatus.TIMEOUT:
            raise SigningFailedError(
                f"Signing {target} timed out after {self.config.timeout_seconds}s"
            )
        return result.exit_code


@dataclass
class CallbackSigner:
    """Sign by calling an in-process routine.

    The callback receives (source, target). Returning None counts as
    success; an int is taken as the exit status.
    """

    callback: SigningCallback

    def sign(self, source: Path, target: Path) -> int:
        status = self.callback(source, target)
        return 0 if status is None else int(status)
