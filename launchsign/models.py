"""launchsign data models and signing-loop state.

Contains the dataclasses that cross module boundaries.
SigningState is the LangGraph TypedDict for the convergence loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, TypedDict

from launchsign.core.errors import SignFailure


# --- Enums ---


class Phase(str, Enum):
    """Where a signing run currently is.

    INIT -> LOCATE -> NOT_A_ZIP | HAS_TRAILER
    HAS_TRAILER -> PREPARE -> INVOKE -> MEASURE -> DECIDE -> PREPARE | DONE | ABORTED
    """

    INIT = "init"
    LOCATE = "locate"
    NOT_A_ZIP = "not_a_zip"
    HAS_TRAILER = "has_trailer"
    PREPARE = "prepare"
    INVOKE = "invoke"
    MEASURE = "measure"
    DECIDE = "decide"
    DONE = "done"
    ABORTED = "aborted"


class Arrangement(str, Enum):
    """How the working file relates to the input and output files."""

    # input == output; restore the target from a pristine backup each pass
    RESTORE = "restore"
    # input != output; the signer reads a patched copy of the input
    REDIRECT = "redirect"
    # input == output; patch and re-sign the target itself
    IN_PLACE = "in_place"


# --- Dataclasses ---


@dataclass
class TargetDescriptor:
    """The file being signed, measured before the first pass.

    comment_size_offset is None for files without a usable ZIP trailer.
    It is taken from the unmodified input and never recomputed.
    """

    input_path: Path
    output_path: Path
    original_size: int
    comment_size_offset: Optional[int] = None
    original_comment_size: int = 0

    @property
    def same_file(self) -> bool:
        return self.input_path == self.output_path

    @property
    def is_zip(self) -> bool:
        return self.comment_size_offset is not None


@dataclass(frozen=True)
class SigningAttempt:
    """Record of a single signing pass."""

    pass_index: int
    applied_guess: int
    observed_delta: int

    @property
    def converged(self) -> bool:
        return self.observed_delta == self.applied_guess


@dataclass(frozen=True)
class SigningResult:
    """Outcome of a successful signing run."""

    passes: int
    signature_size: int
    patched: bool
    history: list[SigningAttempt] = field(default_factory=list)


# --- Signing Loop State (LangGraph TypedDict) ---


class SigningState(TypedDict, total=False):
    """LangGraph state for the signing convergence loop.

    total=False: all fields optional, enabling incremental building.
    Nodes read/write only their fields.
    """

    phase: Phase

    # Convergence tracking
    pass_index: int
    max_passes: int
    guess: int
    delta: Optional[int]
    history: list[SigningAttempt]

    # Set by any node that hits a fatal error; the graph then ends
    failure: Optional[SignFailure]
