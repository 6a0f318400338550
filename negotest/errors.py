"""Errors raised by the negotiation trace harness."""

from typing import Optional


class HarnessError(Exception):
    """Base class for harness failures."""


class PreparationError(HarnessError):
    """Repository inconsistent or unwritable before a run."""


class NegotiationError(HarnessError):
    """A negotiation session did not complete."""

    reason = "negotiation_error"

    def __init__(self, message: str, scenario: Optional[str] = None, algorithm: Optional[str] = None):
        self.scenario = scenario
        self.algorithm = algorithm
        super().__init__(message)


class Cancelled(NegotiationError):
    """Run cancelled before or during the transport call."""

    reason = "cancelled"


class TransportFailure(NegotiationError):
    """Server unreachable, timed out, or no protocol frame exchanged."""

    reason = "transport_failure"


class TraceConflictError(HarnessError):
    """A different trace was already recorded under the same key."""


class UnresolvedTip(NegotiationError):
    """A negotiation tip does not name a commit in the client repository."""

    reason = "unresolved_tip"
