"""
negotest - Record and compare git have/want negotiation traces
"""

from negotest.comparator import TraceComparator, compare, have_count_violations, render_diff
from negotest.errors import (
    HarnessError,
    PreparationError,
    NegotiationError,
    Cancelled,
    TransportFailure,
    TraceConflictError,
)
from negotest.harness import NegotiationHarness
from negotest.models import (
    Algorithm,
    Frame,
    FrameDirection,
    FrameKind,
    HarnessConfig,
    NegotiationTrace,
    PreparedRun,
    RunOutcome,
    RunStatus,
    TraceDiff,
)
from negotest.storage import TraceStore

__version__ = "0.1.0"
__all__ = [
    "TraceComparator",
    "compare",
    "have_count_violations",
    "render_diff",
    "HarnessError",
    "PreparationError",
    "NegotiationError",
    "Cancelled",
    "TransportFailure",
    "TraceConflictError",
    "NegotiationHarness",
    "Algorithm",
    "Frame",
    "FrameDirection",
    "FrameKind",
    "HarnessConfig",
    "NegotiationTrace",
    "PreparedRun",
    "RunOutcome",
    "RunStatus",
    "TraceDiff",
    "TraceStore",
]
