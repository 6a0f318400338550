import difflib
import hashlib
import logging
from typing import Dict, List, Optional, Sequence

from negotest.alignment import AlignStatus, align_by_lcs, get_alignment_summary
from negotest.cascade import collapse_divergences, mark_cascades
from negotest.models.comparison import (
    FrameComparison,
    FrameStatus,
    HaveCountViolation,
    TraceDiff,
)
from negotest.models.trace import NegotiationTrace

logger = logging.getLogger(__name__)


def trace_label(trace: NegotiationTrace) -> str:
    return f"{trace.scenario}/{trace.algorithm.value}"


class TraceComparator:
    """
    Frame-by-frame structural diff of two negotiation traces.

    A mismatch is reported in the returned TraceDiff; comparing never
    fails because traces differ.
    """

    def compare(
        self,
        baseline: NegotiationTrace,
        candidate: NegotiationTrace,
        baseline_label: Optional[str] = None,
        candidate_label: Optional[str] = None,
    ) -> TraceDiff:
        aligned_pairs = align_by_lcs(baseline.frames, candidate.frames)
        logger.debug(f"Alignment: {get_alignment_summary(aligned_pairs)}")

        comparisons = collapse_divergences(
            [self._compare_pair(pair, i) for i, pair in enumerate(aligned_pairs)]
        )
        root_cause_index = mark_cascades(comparisons)

        baseline_label = baseline_label or trace_label(baseline)
        candidate_label = candidate_label or trace_label(candidate)
        return TraceDiff(
            comparison_id=self._comparison_id(baseline, candidate, baseline_label, candidate_label),
            scenario=baseline.scenario,
            baseline_label=baseline_label,
            candidate_label=candidate_label,
            frame_comparisons=comparisons,
            baseline_have_count=baseline.have_count,
            candidate_have_count=candidate.have_count,
            baseline_round_count=baseline.round_count,
            candidate_round_count=candidate.round_count,
            root_cause_index=root_cause_index,
        )

    def _compare_pair(self, pair, position: int) -> FrameComparison:
        if pair.status == AlignStatus.REMOVED:
            return FrameComparison(
                position=position,
                baseline_index=pair.baseline_index,
                candidate_index=None,
                status=FrameStatus.REMOVE,
                baseline_line=pair.baseline_frame.to_line(),
                diff_summary="Frame missing from candidate",
            )

        if pair.status == AlignStatus.ADDED:
            return FrameComparison(
                position=position,
                baseline_index=None,
                candidate_index=pair.candidate_index,
                status=FrameStatus.ADD,
                candidate_line=pair.candidate_frame.to_line(),
                diff_summary="Frame only in candidate",
            )

        return FrameComparison(
            position=position,
            baseline_index=pair.baseline_index,
            candidate_index=pair.candidate_index,
            status=FrameStatus.MATCH,
            baseline_line=pair.baseline_frame.to_line(),
            candidate_line=pair.candidate_frame.to_line(),
        )

    def _comparison_id(
        self,
        baseline: NegotiationTrace,
        candidate: NegotiationTrace,
        baseline_label: str,
        candidate_label: str,
    ) -> str:
        key = "|".join([baseline_label, baseline.digest, candidate_label, candidate.digest])
        return f"cmp_{hashlib.sha256(key.encode('utf-8')).hexdigest()[:12]}"


def compare(trace_a: NegotiationTrace, trace_b: NegotiationTrace) -> TraceDiff:
    return TraceComparator().compare(trace_a, trace_b)


def render_diff(baseline: NegotiationTrace, candidate: NegotiationTrace, context: int = 3) -> str:
    """Unified diff of the two trace artifacts, with object ids replaced by labels."""
    def lines(trace: NegotiationTrace) -> List[str]:
        rendered = []
        for line in trace.to_text().splitlines(keepends=True):
            for oid, label in trace.names.items():
                line = line.replace(oid, label)
            rendered.append(line)
        return rendered

    return "".join(difflib.unified_diff(
        lines(baseline),
        lines(candidate),
        fromfile=trace_label(baseline),
        tofile=trace_label(candidate),
        n=context,
    ))


def have_count_violations(
    traces: Dict[str, NegotiationTrace],
    order: Sequence[str],
) -> List[HaveCountViolation]:
    """
    Check have counts against an expected non-increasing order.

    ``order`` lists algorithm names from most to fewest expected haves.
    Algorithms without a trace are skipped. The ordering is a per-scenario
    baseline, so violations are returned as regression candidates rather
    than raised.
    """
    present = [name for name in order if name in traces]
    violations = []
    for i, higher in enumerate(present):
        for lower in present[i + 1:]:
            higher_count = traces[higher].have_count
            lower_count = traces[lower].have_count
            if lower_count > higher_count:
                violations.append(HaveCountViolation(
                    scenario=traces[higher].scenario,
                    expected_higher=higher,
                    expected_lower=lower,
                    higher_count=higher_count,
                    lower_count=lower_count,
                ))
    return violations
