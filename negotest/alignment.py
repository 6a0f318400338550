from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from negotest.models.trace import Frame


class AlignStatus(Enum):
    MATCHED = "matched"
    ADDED = "added"
    REMOVED = "removed"


@dataclass
class AlignedPair:
    status: AlignStatus
    baseline_frame: Optional[Frame] = None
    candidate_frame: Optional[Frame] = None
    baseline_index: Optional[int] = None
    candidate_index: Optional[int] = None


def compute_lcs(left: Sequence[str], right: Sequence[str]) -> List[Tuple[int, int]]:
    """Index pairs of a longest common subsequence, in order."""
    rows, cols = len(left), len(right)

    # suffix[i][j] = LCS length of left[i:] and right[j:]
    suffix = [[0] * (cols + 1) for _ in range(rows + 1)]
    for i in range(rows - 1, -1, -1):
        for j in range(cols - 1, -1, -1):
            if left[i] == right[j]:
                suffix[i][j] = suffix[i + 1][j + 1] + 1
            else:
                suffix[i][j] = max(suffix[i + 1][j], suffix[i][j + 1])

    pairs = []
    i = j = 0
    while i < rows and j < cols:
        if left[i] == right[j]:
            pairs.append((i, j))
            i, j = i + 1, j + 1
        elif suffix[i + 1][j] >= suffix[i][j + 1]:
            i += 1
        else:
            j += 1
    return pairs


def align_by_lcs(
    baseline_frames: Sequence[Frame],
    candidate_frames: Sequence[Frame],
) -> List[AlignedPair]:
    """
    Align two frame sequences on their keys.

    Frames between two consecutive LCS matches are emitted as removals
    (baseline only) followed by additions (candidate only).
    """
    anchors = compute_lcs(
        [f.key for f in baseline_frames],
        [f.key for f in candidate_frames],
    )
    # Anchor past the end flushes the trailing frames.
    anchors.append((len(baseline_frames), len(candidate_frames)))

    pairs: List[AlignedPair] = []
    next_b = next_c = 0
    for b_anchor, c_anchor in anchors:
        pairs.extend(
            AlignedPair(AlignStatus.REMOVED, baseline_frame=baseline_frames[b], baseline_index=b)
            for b in range(next_b, b_anchor)
        )
        pairs.extend(
            AlignedPair(AlignStatus.ADDED, candidate_frame=candidate_frames[c], candidate_index=c)
            for c in range(next_c, c_anchor)
        )
        if b_anchor < len(baseline_frames):
            pairs.append(AlignedPair(
                AlignStatus.MATCHED,
                baseline_frame=baseline_frames[b_anchor],
                candidate_frame=candidate_frames[c_anchor],
                baseline_index=b_anchor,
                candidate_index=c_anchor,
            ))
        next_b, next_c = b_anchor + 1, c_anchor + 1
    return pairs


def get_alignment_summary(pairs: List[AlignedPair]) -> Dict[str, int]:
    counts = Counter(p.status.value for p in pairs)
    return {
        "total_pairs": len(pairs),
        "matched": counts[AlignStatus.MATCHED.value],
        "added": counts[AlignStatus.ADDED.value],
        "removed": counts[AlignStatus.REMOVED.value],
    }
