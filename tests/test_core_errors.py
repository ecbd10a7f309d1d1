"""Tests for launchsign.core.errors - error hierarchy and isinstance checks."""

from launchsign.core.errors import (
    BackupConflictError,
    ConfigError,
    ConvergenceExhaustedError,
    InputFileError,
    SignFailure,
    SigningFailedError,
    TrailerError,
    TrailerReadError,
    TrailerSizeMismatch,
    TrailerWriteError,
    UsageError,
    WorkingCopyError,
)


def test_sign_failure_is_base():
    assert issubclass(SignFailure, Exception)


def test_all_errors_inherit_from_root():
    for cls in [
        ConfigError,
        InputFileError,
        BackupConflictError,
        WorkingCopyError,
        TrailerError,
        SigningFailedError,
        ConvergenceExhaustedError,
    ]:
        assert issubclass(cls, SignFailure)


def test_trailer_errors_inherit_from_trailer_error():
    for cls in [TrailerReadError, TrailerWriteError, TrailerSizeMismatch]:
        assert issubclass(cls, TrailerError)


def test_usage_error_is_config_error():
    assert issubclass(UsageError, ConfigError)


def test_cause_exposed():
    try:
        try:
            raise OSError("disk full")
        except OSError as e:
            raise TrailerReadError("Unable to read file app.exe") from e
    except SignFailure as f:
        assert isinstance(f.cause, OSError)
        assert str(f) == "Unable to read file app.exe"


def test_cause_absent():
    assert SigningFailedError("Unable to sign file app.exe").cause is None


def test_convergence_exhausted_reports_limit():
    err = ConvergenceExhaustedError("no luck after 7 passes", max_passes=7)
    assert err.max_passes == 7
    assert str(err) == "no luck after 7 passes"
