"""Convergence loop configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from launchsign.core.config import ProcessConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 10
MIN_PASSES = 2


@dataclass(frozen=True)
class ConvergenceConfig:
    """Configurable parameters for the signing loop.

    Declarative: behavior is driven by these values, not if-else chains.
    in_place skips the restore-from-backup step between passes; lenient
    recomputes a damaged trailer's comment length from the file's tail.
    """

    max_passes: int = DEFAULT_MAX_PASSES
    in_place: bool = False
    lenient: bool = False
    backup: bool = False

    def __post_init__(self) -> None:
        if self.max_passes < MIN_PASSES:
            logger.warning(
                "max_passes=%d is below the minimum; using %d",
                self.max_passes,
                MIN_PASSES,
            )
            object.__setattr__(self, "max_passes", MIN_PASSES)


@dataclass(frozen=True)
class SignConfig:
    """Top-level configuration for one signing run."""

    convergence: ConvergenceConfig = field(default_factory=ConvergenceConfig)
    process: ProcessConfig = field(default_factory=ProcessConfig)

    @property
    def verbose(self) -> bool:
        return self.process.verbose
