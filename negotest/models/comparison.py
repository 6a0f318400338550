"""
Comparison models for negotest.

Used to represent the frame-by-frame diff of a baseline trace against
a candidate trace.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class FrameStatus(Enum):
    """Status of an aligned frame position"""
    MATCH = "match"
    DIVERGE = "diverge"
    ADD = "add"
    REMOVE = "remove"
    CASCADE = "cascade"


@dataclass
class FrameComparison:
    """Comparison result for a single aligned position"""

    position: int
    baseline_index: Optional[int]     # index into the baseline trace's frames
    candidate_index: Optional[int]    # index into the candidate trace's frames
    status: FrameStatus
    baseline_line: Optional[str] = None
    candidate_line: Optional[str] = None

    diff_summary: Optional[str] = None


@dataclass
class TraceDiff:
    """Result of comparing two negotiation traces"""

    comparison_id: str
    scenario: str
    baseline_label: str
    candidate_label: str

    frame_comparisons: List[FrameComparison]

    baseline_have_count: int = 0
    candidate_have_count: int = 0
    baseline_round_count: int = 0
    candidate_round_count: int = 0

    # First position that is not a match
    root_cause_index: Optional[int] = None

    # Summary statistics
    total_positions: int = 0
    matched: int = 0
    diverged: int = 0
    added: int = 0
    removed: int = 0
    cascaded: int = 0

    def __post_init__(self):
        """Calculate summary stats from frame_comparisons if not provided"""
        if self.total_positions == 0:
            self.total_positions = len(self.frame_comparisons)
        if self.matched == 0:
            self.matched = sum(1 for c in self.frame_comparisons if c.status == FrameStatus.MATCH)
        if self.diverged == 0:
            self.diverged = sum(1 for c in self.frame_comparisons if c.status == FrameStatus.DIVERGE)
        if self.added == 0:
            self.added = sum(1 for c in self.frame_comparisons if c.status == FrameStatus.ADD)
        if self.removed == 0:
            self.removed = sum(1 for c in self.frame_comparisons if c.status == FrameStatus.REMOVE)
        if self.cascaded == 0:
            self.cascaded = sum(1 for c in self.frame_comparisons if c.status == FrameStatus.CASCADE)

    @property
    def identical(self) -> bool:
        return self.matched == self.total_positions

    def summary(self) -> dict:
        return {
            "identical": self.identical,
            "total_positions": self.total_positions,
            "matched": self.matched,
            "diverged": self.diverged,
            "added": self.added,
            "removed": self.removed,
            "cascaded": self.cascaded,
            "root_cause_index": self.root_cause_index,
            "have_counts": [self.baseline_have_count, self.candidate_have_count],
            "round_counts": [self.baseline_round_count, self.candidate_round_count],
        }


@dataclass(frozen=True)
class HaveCountViolation:
    """Two algorithms whose have counts break the expected ordering"""

    scenario: str
    expected_higher: str
    expected_lower: str
    higher_count: int
    lower_count: int

    def describe(self) -> str:
        return (
            f"{self.scenario}: {self.expected_lower} sent {self.lower_count} haves, "
            f"more than {self.expected_higher} ({self.higher_count})"
        )
