"""
Trace models for negotest.

A trace is the ordered list of pkt-line frames one negotiation-only
fetch exchanged, as seen by the client.
"""

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# SHA-1 or SHA-256 object ids
OBJECT_ID = re.compile(r"\b(?:[0-9a-f]{64}|[0-9a-f]{40})\b")


def extract_object_ids(payload: str) -> Tuple[str, ...]:
    return tuple(OBJECT_ID.findall(payload))


class Algorithm(Enum):
    """Values of git's fetch.negotiationAlgorithm"""
    NOOP = "noop"
    CONSECUTIVE = "consecutive"
    SKIPPING = "skipping"


class FrameDirection(Enum):
    CLIENT_TO_SERVER = "client_to_server"
    SERVER_TO_CLIENT = "server_to_client"


class FrameKind(Enum):
    HAVE = "have"
    WANT = "want"
    ACK = "ack"
    DONE = "done"
    CONTROL = "control"


@dataclass(frozen=True)
class Frame:
    """One protocol packet"""

    index: int
    direction: FrameDirection
    kind: FrameKind
    payload: str
    object_ids: Tuple[str, ...] = ()

    @property
    def key(self) -> str:
        """Identity used to align frames across traces"""
        return f"{self.direction.value} {self.payload}"

    def to_line(self) -> str:
        return f"{self.direction.value}\t{self.kind.value}\t{self.payload}"


@dataclass(frozen=True)
class NegotiationTrace:
    """Frames produced by exactly one (scenario, algorithm) run"""

    scenario: str
    algorithm: Algorithm
    tips: Tuple[str, ...]
    frames: Tuple[Frame, ...]
    exit_status: int = 0
    names: Dict[str, str] = field(default_factory=dict, compare=False)  # object id -> label
    tip_ids: Tuple[str, ...] = ()  # client object id each tip resolved to

    def frames_of(self, kind: FrameKind) -> List[Frame]:
        return [f for f in self.frames if f.kind == kind]

    @property
    def have_count(self) -> int:
        return len(self.frames_of(FrameKind.HAVE))

    @property
    def round_count(self) -> int:
        return sum(
            1 for f in self.frames
            if f.direction == FrameDirection.CLIENT_TO_SERVER and f.payload == "command=fetch"
        )

    def offered(self) -> List[str]:
        """Labels (or ids, when unknown) of every commit sent as a have, in order"""
        return [
            self.names.get(oid, oid)
            for f in self.frames_of(FrameKind.HAVE)
            for oid in f.object_ids
        ]

    def acknowledged(self) -> List[str]:
        return [
            self.names.get(oid, oid)
            for f in self.frames_of(FrameKind.ACK)
            if f.direction == FrameDirection.SERVER_TO_CLIENT
            for oid in f.object_ids
        ]

    def to_text(self) -> str:
        """Artifact format: one tab-separated frame per line"""
        return "".join(f.to_line() + "\n" for f in self.frames)

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.to_text().encode("utf-8")).hexdigest()

    @classmethod
    def from_text(
        cls,
        text: str,
        scenario: str,
        algorithm: Algorithm,
        tips: Tuple[str, ...] = (),
        exit_status: int = 0,
        names: Optional[Dict[str, str]] = None,
        tip_ids: Tuple[str, ...] = (),
    ) -> 'NegotiationTrace':
        frames = []
        for line in text.splitlines():
            if not line:
                continue
            direction, kind, payload = line.split("\t", 2)
            frames.append(Frame(
                index=len(frames),
                direction=FrameDirection(direction),
                kind=FrameKind(kind),
                payload=payload,
                object_ids=extract_object_ids(payload),
            ))
        return cls(
            scenario=scenario,
            algorithm=algorithm,
            tips=tuple(tips),
            frames=tuple(frames),
            exit_status=exit_status,
            names=names or {},
            tip_ids=tuple(tip_ids),
        )
