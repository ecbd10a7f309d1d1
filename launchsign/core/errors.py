"""Exception hierarchy for launchsign.

SignFailure is the root. Every fatal condition derives from it, so the
command line (and any build integration) can catch one type, print its
message and exit non-zero.
"""

from __future__ import annotations

from typing import Optional


class SignFailure(Exception):
    """Root exception: a human-readable message plus an optional cause."""

    @property
    def cause(self) -> Optional[BaseException]:
        """The underlying exception, if this failure wraps one."""
        return self.__cause__


# --- Shared errors ---


class ConfigError(SignFailure):
    """Invalid configuration: conflicting signer options, bad values."""


class UsageError(ConfigError):
    """The command line could not be interpreted."""


# --- File handling ---


class InputFileError(SignFailure):
    """The file to sign is missing or empty."""


class BackupConflictError(SignFailure):
    """A stale backup file exists and could not be removed."""


class WorkingCopyError(SignFailure):
    """Copying or restoring the working/backup file failed."""


# --- ZIP trailer ---


class TrailerError(SignFailure):
    """Base for all ZIP end-of-central-directory problems."""


class TrailerReadError(TrailerError):
    """I/O failure while scanning a file for its ZIP trailer."""


class TrailerWriteError(TrailerError):
    """The comment-length field could not be written."""


class TrailerSizeMismatch(TrailerError):
    """An EOCD signature exists but its comment length is inconsistent.

    Not fatal: the controller logs it as a warning and signs the file
    directly, without trailer patching.
    """


# --- Signing ---


class SigningFailedError(SignFailure):
    """The signer exited non-zero, timed out, or could not be launched."""


class ConvergenceExhaustedError(SignFailure):
    """The signature size never settled within the pass budget."""

    def __init__(self, message: str, max_passes: int):
        super().__init__(message)
        self.max_passes = max_passes
