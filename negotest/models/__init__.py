"""
negotest data models
"""

from negotest.models.config import HarnessConfig
from negotest.models.trace import (
    Algorithm,
    Frame,
    FrameDirection,
    FrameKind,
    NegotiationTrace,
)
from negotest.models.run import PreparedRun, RunOutcome, RunStatus
from negotest.models.comparison import (
    FrameComparison,
    FrameStatus,
    HaveCountViolation,
    TraceDiff,
)

__all__ = [
    "HarnessConfig",
    "Algorithm",
    "Frame",
    "FrameDirection",
    "FrameKind",
    "NegotiationTrace",
    "PreparedRun",
    "RunOutcome",
    "RunStatus",
    "FrameComparison",
    "FrameStatus",
    "HaveCountViolation",
    "TraceDiff",
]
