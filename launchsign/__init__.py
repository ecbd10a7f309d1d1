"""launchsign: sign launcher-wrapped JARs without breaking the embedded ZIP."""

from launchsign.config import ConvergenceConfig, SignConfig
from launchsign.controller import ConvergenceController, sign_file
from launchsign.core.errors import SignFailure
from launchsign.models import SigningResult

__version__ = "4.0"

__all__ = [
    "ConvergenceConfig",
    "ConvergenceController",
    "SignConfig",
    "SignFailure",
    "SigningResult",
    "sign_file",
]
