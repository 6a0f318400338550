import re
from typing import List

from negotest.models.trace import (
    Frame,
    FrameDirection,
    FrameKind,
    extract_object_ids,
)

# 12:34:56.789012 pkt-line.c:86           packet:        fetch> have 4d5e...
PACKET_LINE = re.compile(r"packet:\s+(?P<prefix>[^\s<>]+)(?P<dir>[<>])(?: (?P<payload>.*))?$")

_ACK_PAYLOADS = ("NAK", "ready", "acknowledgments")


def classify(payload: str) -> FrameKind:
    """
    Map a pkt-line payload to a frame kind.

    Example:
        >>> classify("have 2f5d0e1b5c1f0a8e9d3c7b6a5f4e3d2c1b0a9f8e")
        <FrameKind.HAVE: 'have'>
        >>> classify("0000")
        <FrameKind.CONTROL: 'control'>
    """
    if payload.startswith("have "):
        return FrameKind.HAVE
    if payload.startswith("want ") or payload.startswith("want-ref "):
        return FrameKind.WANT
    if payload.startswith("ACK") or payload in _ACK_PAYLOADS:
        return FrameKind.ACK
    if payload == "done":
        return FrameKind.DONE
    return FrameKind.CONTROL


def parse_packet_trace(text: str) -> List[Frame]:
    """
    Parse GIT_TRACE_PACKET output into frames.

    Timestamps and source locations are dropped, so two traces of the
    same exchange parse to equal frame lists. Lines that are not packet
    records are ignored.
    """
    frames: List[Frame] = []
    for line in text.splitlines():
        match = PACKET_LINE.search(line)
        if not match:
            continue
        payload = (match.group("payload") or "").rstrip()
        direction = (
            FrameDirection.CLIENT_TO_SERVER
            if match.group("dir") == ">"
            else FrameDirection.SERVER_TO_CLIENT
        )
        frames.append(Frame(
            index=len(frames),
            direction=direction,
            kind=classify(payload),
            payload=payload,
            object_ids=extract_object_ids(payload),
        ))
    return frames
