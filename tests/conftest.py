"""Shared fixtures: launcher-style executables wrapping a real ZIP archive."""

import io
import zipfile
from pathlib import Path

import pytest

LAUNCHER_STUB = b"MZ" + bytes(range(256)) * 4


def build_launcher(comment: bytes = b"") -> bytes:
    """An executable stub followed by a JAR-like ZIP archive."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\nMain-Class: app.Main\n")
        zf.writestr("app/Main.class", b"\xca\xfe\xba\xbe" + b"\x00" * 64)
        zf.comment = comment
    return LAUNCHER_STUB + buf.getvalue()


@pytest.fixture
def make_launcher(tmp_path):
    """Factory writing a launcher executable into tmp_path."""

    def _make(name: str = "app.exe", comment: bytes = b"", trailing: bytes = b"") -> Path:
        path = tmp_path / name
        path.write_bytes(build_launcher(comment) + trailing)
        return path

    return _make
