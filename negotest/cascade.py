from typing import List, Optional

from negotest.models.comparison import FrameComparison, FrameStatus

_MISMATCH = (FrameStatus.DIVERGE, FrameStatus.ADD, FrameStatus.REMOVE)


def collapse_divergences(comparisons: List[FrameComparison]) -> List[FrameComparison]:
    """
    Merge runs of removed frames followed by added frames into divergences.

    Pairs are matched up position by position, and only when both sides
    travel in the same direction and carry the same kind of frame. The
    leftovers stay as plain additions or removals.
    """
    result: List[FrameComparison] = []
    i = 0
    while i < len(comparisons):
        if comparisons[i].status != FrameStatus.REMOVE:
            result.append(comparisons[i])
            i += 1
            continue

        removed = []
        while i < len(comparisons) and comparisons[i].status == FrameStatus.REMOVE:
            removed.append(comparisons[i])
            i += 1
        added = []
        while i < len(comparisons) and comparisons[i].status == FrameStatus.ADD:
            added.append(comparisons[i])
            i += 1

        for j in range(max(len(removed), len(added))):
            old = removed[j] if j < len(removed) else None
            new = added[j] if j < len(added) else None
            if old and new and _same_slot(old, new):
                result.append(FrameComparison(
                    position=0,
                    baseline_index=old.baseline_index,
                    candidate_index=new.candidate_index,
                    status=FrameStatus.DIVERGE,
                    baseline_line=old.baseline_line,
                    candidate_line=new.candidate_line,
                    diff_summary=f"'{old.baseline_line}' became '{new.candidate_line}'",
                ))
            else:
                result.extend(c for c in (old, new) if c is not None)

    for position, comparison in enumerate(result):
        comparison.position = position
    return result


def _same_slot(old: FrameComparison, new: FrameComparison) -> bool:
    # direction and kind are the first two columns of a frame line
    return old.baseline_line.split("\t")[:2] == new.candidate_line.split("\t")[:2]


def mark_cascades(comparisons: List[FrameComparison]) -> Optional[int]:
    """
    Find the first mismatch and relabel every later divergence as a cascade.

    Returns the position of that first mismatch, None when the traces agree.
    """
    root = next((c.position for c in comparisons if c.status in _MISMATCH), None)
    if root is not None:
        for comparison in comparisons[root + 1:]:
            if comparison.status == FrameStatus.DIVERGE:
                comparison.status = FrameStatus.CASCADE
    return root
