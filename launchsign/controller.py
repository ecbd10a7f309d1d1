"""Convergence controller: sign a launcher-wrapped JAR until its ZIP trailer holds.

Signing appends a signature after the embedded archive. The controller
patches the archive's EOCD comment length to cover that signature and
re-signs until the signature is exactly as large as the space reserved
for it (two consecutive passes agree on the size).

Three working arrangements are supported:

    RESTORE   input == output. A pristine backup is taken once; every
              later pass restores the target from it before patching.
    REDIRECT  input != output. The signer is pointed at a patched copy of
              the input; the input itself is never modified.
    IN_PLACE  input == output, no working copy. The signer must be able to
              re-sign a file that already carries a signature.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional, Sequence, Union

from launchsign.arguments import find_file_argument
from launchsign.config import SignConfig
from launchsign.core.errors import (
    BackupConflictError,
    ConfigError,
    InputFileError,
    SignFailure,
    SigningFailedError,
    TrailerSizeMismatch,
    WorkingCopyError,
)
from launchsign.loop import run_signing_loop
from launchsign.models import (
    Arrangement,
    Phase,
    SigningAttempt,
    SigningResult,
    TargetDescriptor,
)
from launchsign.signer import CallbackSigner, CommandSigner, Signer, SigningCallback
from launchsign.trailer import locate, write_comment_size

logger = logging.getLogger(__name__)

BACKUP_MARKER = "-presign"

PathArg = Union[str, Path]


def backup_path_for(path: Path) -> Path:
    """Sibling file used as the pristine copy: app.exe -> app-presign.exe."""
    name = path.name
    return path.with_name(name[:-4] + BACKUP_MARKER + name[-4:])


def _copy(src: Path, dest: Path) -> None:
    try:
        shutil.copyfile(src, dest)
    except OSError as e:
        raise WorkingCopyError(f"Unable to write data to {dest}") from e


def _invoke(signer: Signer, source: Path, target: Path) -> None:
    """Run the signer once; any kind of failure becomes SigningFailedError."""
    try:
        status = signer.sign(source, target)
    except SignFailure:
        raise
    except Exception as e:
        raise SigningFailedError(f"Unexpected error signing file {target}") from e
    if status != 0:
        raise SigningFailedError(f"Unable to sign file {target} (exit status {status})")


def _size_delta(target: TargetDescriptor) -> int:
    try:
        size = target.output_path.stat().st_size
    except OSError as e:
        raise SigningFailedError(
            f"Signed file {target.output_path} was not produced"
        ) from e
    return size - target.original_size


class SigningSession:
    """File operations for one execute() call with a ZIP trailer.

    Implements the loop's PassDriver protocol.
    """

    def __init__(
        self,
        target: TargetDescriptor,
        signer: Signer,
        arrangement: Arrangement,
        backup_path: Path,
    ):
        self.target = target
        self.signer = signer
        self.arrangement = arrangement
        self.backup_path = backup_path

    @property
    def source_path(self) -> Path:
        """The file the signer reads."""
        if self.arrangement == Arrangement.REDIRECT:
            return self.backup_path
        return self.target.output_path

    @property
    def patch_path(self) -> Path:
        """The file whose trailer is adjusted before each pass."""
        return self.source_path

    def prepare(self, pass_index: int, guess: int) -> None:
        if pass_index == 0:
            logger.info("Signing file %s", self.target.output_path)
            return

        logger.info("    Resigning with signature size %d", guess)
        if self.arrangement == Arrangement.RESTORE:
            _copy(self.backup_path, self.target.output_path)
        write_comment_size(
            self.patch_path,
            self.target.comment_size_offset,
            self.target.original_comment_size + guess,
        )

    def sign(self) -> None:
        _invoke(self.signer, self.source_path, self.target.output_path)

    def measure(self) -> int:
        return _size_delta(self.target)


class ConvergenceController:
    """Signs one file, repeating until the signature size is stable.

    Args:
        signer: Performs one signing pass.
        config: Pass budget, working arrangement, backup retention.
    """

    def __init__(self, signer: Signer, config: SignConfig = SignConfig()):
        self.signer = signer
        self.config = config

    def execute(self, file: PathArg, input_file: Optional[PathArg] = None) -> SigningResult:
        """Blocking wrapper around aexecute()."""
        return asyncio.run(self.aexecute(file, input_file))

    async def aexecute(
        self, file: PathArg, input_file: Optional[PathArg] = None
    ) -> SigningResult:
        """Sign file (reading input_file when it differs) until converged.

        Raises:
            SignFailure: Any fatal condition; see launchsign.core.errors.
        """
        output_path = Path(file).resolve()
        input_path = Path(input_file).resolve() if input_file is not None else output_path
        target = self._describe(input_path, output_path)

        backup_path = backup_path_for(input_path)
        self._remove_stale_backup(backup_path)

        trailer = self._locate(input_path)
        if trailer is None:
            return await asyncio.to_thread(self._sign_directly, target, backup_path)

        target.comment_size_offset = trailer.comment_size_offset
        target.original_comment_size = trailer.comment_size
        arrangement = self._arrangement_for(target)
        logger.debug(
            "Comment size field at %d holds %d; working arrangement %s",
            trailer.comment_size_offset,
            trailer.comment_size,
            arrangement.value,
        )

        if arrangement != Arrangement.IN_PLACE or self.config.convergence.backup:
            _copy(input_path, backup_path)

        session = SigningSession(target, self.signer, arrangement, backup_path)
        succeeded = False
        try:
            final = await run_signing_loop(session, self.config.convergence)
            failure = final.get("failure")
            if failure is not None:
                raise failure
            if final.get("phase") != Phase.DONE:
                raise SignFailure(
                    f"Signing {output_path} stopped in phase {final.get('phase')}"
                )
            succeeded = True
        finally:
            self._clean_up(session, trailer.stored_comment_size, succeeded)

        history = final.get("history", [])
        return SigningResult(
            passes=len(history),
            signature_size=final["delta"],
            patched=True,
            history=history,
        )

    # --- steps ---

    def _describe(self, input_path: Path, output_path: Path) -> TargetDescriptor:
        size = input_path.stat().st_size if input_path.is_file() else 0
        if size == 0:
            raise InputFileError(f"File does not exist: {input_path}")
        return TargetDescriptor(
            input_path=input_path,
            output_path=output_path,
            original_size=size,
        )

    def _remove_stale_backup(self, backup_path: Path) -> None:
        if not backup_path.exists():
            return
        try:
            backup_path.unlink()
        except OSError as e:
            raise BackupConflictError(f"Couldn't delete backup file {backup_path}") from e

    def _locate(self, input_path: Path):
        try:
            return locate(input_path, lenient=self.config.convergence.lenient)
        except TrailerSizeMismatch as e:
            logger.warning("%s; signing without adjusting the ZIP trailer", e)
            return None

    def _arrangement_for(self, target: TargetDescriptor) -> Arrangement:
        if not target.same_file:
            if isinstance(self.signer, CommandSigner) and self.signer.input_index is None:
                raise ConfigError(
                    f"The signing command must name the input file {target.input_path}"
                )
            return Arrangement.REDIRECT
        if self.config.convergence.in_place:
            return Arrangement.IN_PLACE
        return Arrangement.RESTORE

    def _sign_directly(self, target: TargetDescriptor, backup_path: Path) -> SigningResult:
        """Single pass for files without a usable ZIP trailer."""
        logger.info("%s has no ZIP trailer to adjust; signing it directly", target.input_path)
        logger.info("Signing file %s", target.output_path)
        if self.config.convergence.backup and target.same_file:
            _copy(target.input_path, backup_path)
        _invoke(self.signer, target.input_path, target.output_path)
        delta = _size_delta(target)
        return SigningResult(
            passes=1,
            signature_size=delta,
            patched=False,
            history=[SigningAttempt(pass_index=0, applied_guess=0, observed_delta=delta)],
        )

    def _clean_up(
        self, session: SigningSession, stored_comment_size: int, succeeded: bool
    ) -> None:
        """Release the backup file on every exit path."""
        keep = self.config.convergence.backup
        backup_path = session.backup_path
        target = session.target
        try:
            if session.arrangement == Arrangement.RESTORE and not succeeded:
                logger.info("Restoring %s from %s", target.output_path, backup_path)
                _copy(backup_path, target.output_path)
            if session.arrangement == Arrangement.REDIRECT and keep:
                write_comment_size(
                    backup_path, target.comment_size_offset, stored_comment_size
                )
            if not keep and backup_path.exists():
                backup_path.unlink()
        except (OSError, SignFailure) as e:
            logger.warning("Could not clean up %s: %s", backup_path, e)


def sign_file(
    file: PathArg,
    *,
    command: Optional[Sequence[str]] = None,
    callback: Optional[SigningCallback] = None,
    input_file: Optional[PathArg] = None,
    base_dir: Optional[PathArg] = None,
    config: SignConfig = SignConfig(),
) -> SigningResult:
    """Sign one file with either a command line or an in-process callback.

    Relative paths resolve against base_dir (default: the current
    directory), which is also the signing command's working directory.

    Raises:
        ConfigError: Both or neither of command/callback were given, or the
            command does not mention a distinct input file.
        SignFailure: The signing run failed.
    """
    if (command is None) == (callback is None):
        raise ConfigError(
            "You must provide either a signing command line, or a signing "
            "callback; but not both."
        )

    base = Path(base_dir) if base_dir is not None else Path.cwd()
    output_path = (base / file).resolve()
    input_path = (base / input_file).resolve() if input_file is not None else output_path

    if command is not None:
        input_index = None
        if input_path != output_path:
            input_index = find_file_argument(command, input_path, base)
            if input_index is None:
                raise ConfigError(
                    f"The signing command does not mention the input file {input_path}"
                )
        signer: Signer = CommandSigner(
            command, input_index=input_index, cwd=base, config=config.process
        )
    else:
        signer = CallbackSigner(callback)

    return ConvergenceController(signer, config).execute(output_path, input_path)
