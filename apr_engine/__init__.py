"""
apr-engine - Automated Program Repair

Localizes faults from compiler, lint and test output (optionally fused with
spectrum-based scores from test coverage), generates candidate patches from
template strategies and the Claude API, and keeps the first candidate the
tests accept.
"""

__version__ = "0.1.0"

from .config import FaultLocalizationConfig, RepairConfig
from .engine import RepairEngine
from .models import Fault, Patch, RepairResult, ValidationResult

__all__ = [
    "FaultLocalizationConfig",
    "Fault",
    "Patch",
    "RepairConfig",
    "RepairEngine",
    "RepairResult",
    "ValidationResult",
]
