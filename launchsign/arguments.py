"""Find the file to sign inside a signing tool's command line.

Signing tools name their files differently: osslsigncode uses explicit
-in/-out options, signtool and jsign take the executable as a trailing
argument. Only one file can be signed per invocation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from launchsign.core.errors import UsageError

INPUT_MARKER = "-in"
OUTPUT_MARKER = "-out"
EXE_SUFFIX = ".exe"


@dataclass(frozen=True)
class SigningFiles:
    """Which command arguments name the input and output files."""

    input_path: Path
    output_path: Path
    input_index: int
    output_index: int

    @property
    def same_file(self) -> bool:
        return self.input_path == self.output_path


def normalize_separators(arg: str) -> str:
    """Accept both slash styles regardless of platform."""
    return arg.replace("/", os.sep).replace("\\", os.sep)


def _marked_index(command: Sequence[str], marker: str) -> Optional[int]:
    """Index of the value following the last occurrence of marker."""
    found = None
    for i in range(1, len(command) - 1):
        if command[i] == marker:
            found = i + 1
    return found


def _last_exe_index(command: Sequence[str]) -> Optional[int]:
    for i in range(len(command) - 1, 0, -1):
        if command[i].lower().endswith(EXE_SUFFIX):
            return i
    return None


def infer_files(command: Sequence[str], base_dir: Optional[Path] = None) -> SigningFiles:
    """Work out which file a signing command reads and which it writes.

    Explicit -in/-out markers win. Otherwise the last argument (after the
    executable) ending in .exe is both input and output. A missing -in or
    -out side falls back to the other one.

    Raises:
        UsageError: No argument names a file to sign.
    """
    base = base_dir if base_dir is not None else Path.cwd()

    input_index = _marked_index(command, INPUT_MARKER)
    output_index = _marked_index(command, OUTPUT_MARKER)
    if input_index is None and output_index is None:
        input_index = output_index = _last_exe_index(command)
    elif input_index is None:
        input_index = output_index
    elif output_index is None:
        output_index = input_index

    if input_index is None:
        raise UsageError("The signing command does not name an .exe file to sign")

    return SigningFiles(
        input_path=(base / normalize_separators(command[input_index])).resolve(),
        output_path=(base / normalize_separators(command[output_index])).resolve(),
        input_index=input_index,
        output_index=output_index,
    )


def find_file_argument(
    command: Sequence[str], path: Path, base_dir: Optional[Path] = None
) -> Optional[int]:
    """Index of the last argument (after the executable) that refers to path."""
    base = base_dir if base_dir is not None else Path.cwd()
    target = path.resolve()
    for i in range(len(command) - 1, 0, -1):
        arg = command[i]
        if not arg or arg.startswith("-"):
            continue
        if (base / normalize_separators(arg)).resolve() == target:
            return i
    return None
