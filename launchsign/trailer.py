"""ZIP end-of-central-directory (EOCD) locator and comment-size patcher.

A launcher-wrapped JAR is an executable followed by a ZIP archive. Signing
appends bytes after the archive, so the EOCD record no longer sits at the
end of the file. Growing the EOCD comment-length field by exactly the
signature size makes the signature look like the archive comment again.

Layout of the fixed 22-byte record (all little-endian):

    offset  size  field
    0       4     signature 50 4B 05 06
    4       2     number of this disk
    6       2     disk where the central directory starts
    8       2     central directory records on this disk
    10      2     total central directory records
    12      4     central directory size
    16      4     central directory offset
    20      2     comment length
    22      n     comment
"""

from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass
from typing import Optional, Union

from launchsign.core.errors import (
    TrailerReadError,
    TrailerSizeMismatch,
    TrailerWriteError,
)

logger = logging.getLogger(__name__)

EOCD_SIGNATURE = b"PK\x05\x06"
EOCD_SIZE = 22
MAX_COMMENT_SIZE = 0xFFFF

_COMMENT_SIZE = struct.Struct("<H")

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class TrailerInfo:
    """Where the EOCD record sits and what its comment length is.

    comment_size is the effective comment length: the stored value in
    strict mode, the length recomputed from the file's tail in lenient mode.
    """

    eocd_offset: int
    comment_size_offset: int
    stored_comment_size: int
    comment_size: int

    @property
    def consistent(self) -> bool:
        return self.stored_comment_size == self.comment_size


def read_tail(path: PathLike) -> tuple[bytes, int]:
    """Read the region of the file that can hold an EOCD record.

    Returns (buffer, buffer_offset) where buffer_offset is the absolute
    position of buffer[0] in the file.

    Raises:
        TrailerReadError: On any I/O failure or a short read.
    """
    try:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            file_size = f.tell()
            buf_len = min(file_size, EOCD_SIZE + MAX_COMMENT_SIZE)
            buf_offset = file_size - buf_len
            f.seek(buf_offset)
            buffer = f.read(buf_len)
    except OSError as e:
        raise TrailerReadError(f"Unable to read file {path}") from e

    if len(buffer) != buf_len:
        raise TrailerReadError(f"Problem reading ZIP end buffer of {path}")
    return buffer, buf_offset


def _candidates(buffer: bytes):
    """Yield EOCD signature positions, last one first."""
    pos = buffer.rfind(EOCD_SIGNATURE, 0, len(buffer) - EOCD_SIZE + len(EOCD_SIGNATURE))
    while pos >= 0:
        yield pos
        pos = buffer.rfind(EOCD_SIGNATURE, 0, pos + len(EOCD_SIGNATURE) - 1)


def scan(buffer: bytes, lenient: bool = False) -> Optional[tuple[int, int, int]]:
    """Find the EOCD record within a tail buffer.

    Returns (position, stored_comment_size, effective_comment_size) relative
    to the buffer, or None if no signature exists at all.

    Raises:
        TrailerSizeMismatch: Signatures were found but none has a comment
            length that reaches exactly to the end of the buffer (strict
            mode only).
    """
    if len(buffer) < EOCD_SIZE:
        return None

    found = 0
    for pos in _candidates(buffer):
        found += 1
        header_end = pos + EOCD_SIZE
        (stored,) = _COMMENT_SIZE.unpack_from(buffer, header_end - 2)
        if lenient:
            return pos, stored, len(buffer) - header_end
        if header_end + stored == len(buffer):
            return pos, stored, stored

    if found:
        raise TrailerSizeMismatch(
            f"Found {found} ZIP end header(s) but none has a comment length "
            f"matching the end of the file"
        )
    return None


def locate(path: PathLike, lenient: bool = False) -> Optional[TrailerInfo]:
    """Locate the ZIP trailer at the end of a file.

    Returns None when the file carries no EOCD signature in its tail window:
    the file needs no trailer patching and can be signed directly.

    Raises:
        TrailerReadError: The file could not be read.
        TrailerSizeMismatch: See scan().
    """
    buffer, buf_offset = read_tail(path)
    try:
        hit = scan(buffer, lenient=lenient)
    except TrailerSizeMismatch as e:
        raise TrailerSizeMismatch(f"{path}: {e}") from None
    if hit is None:
        return None

    pos, stored, effective = hit
    info = TrailerInfo(
        eocd_offset=buf_offset + pos,
        comment_size_offset=buf_offset + pos + EOCD_SIZE - 2,
        stored_comment_size=stored,
        comment_size=effective,
    )
    logger.debug(
        "ZIP end header at %d, comment size %d (stored %d)",
        info.eocd_offset,
        info.comment_size,
        info.stored_comment_size,
    )
    return info


def write_comment_size(path: PathLike, offset: int, new_size: int) -> None:
    """Overwrite the 2-byte comment-length field at offset, in place.

    Raises:
        TrailerWriteError: new_size does not fit in 16 bits, or I/O failed.
    """
    if not 0 <= new_size <= MAX_COMMENT_SIZE:
        raise TrailerWriteError(
            f"ZIP comment size {new_size} is out of range "
            f"(0..{MAX_COMMENT_SIZE}) for {path}"
        )
    try:
        with open(path, "r+b") as f:
            f.seek(offset)
            f.write(_COMMENT_SIZE.pack(new_size))
    except OSError as e:
        raise TrailerWriteError(f"Unable to write data to {path}") from e
