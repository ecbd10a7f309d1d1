"""Foundation configuration dataclasses.

ProcessConfig is shared by the subprocess runner and the signers.
All behavior-controlling parameters live here, not as magic numbers in code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ProcessConfig:
    """Configuration for supervising an external signing process.

    verbose forwards the child's stdout; stderr is always forwarded.
    timeout_seconds=None waits for the signer indefinitely.
    """

    verbose: bool = False
    timeout_seconds: Optional[float] = None
    chunk_size: int = 64 * 1024
