import pytest

from negotest.models.trace import (
    Algorithm,
    Frame,
    FrameDirection,
    NegotiationTrace,
    extract_object_ids,
)
from negotest.packet_trace import classify

pytest_plugins = ["negotest.pytest_plugin.plugin"]

A = "a" * 40
B = "b" * 40
C = "c" * 40
D = "d" * 40


@pytest.fixture
def make_trace():
    """
    Build a trace from (">" or "<", payload) packets.

    ">" is client to server, as in GIT_TRACE_PACKET output.
    """
    def factory(*packets, scenario="demo", algorithm=Algorithm.CONSECUTIVE, names=None):
        frames = tuple(
            Frame(
                index=i,
                direction=FrameDirection.CLIENT_TO_SERVER if arrow == ">" else FrameDirection.SERVER_TO_CLIENT,
                kind=classify(payload),
                payload=payload,
                object_ids=extract_object_ids(payload),
            )
            for i, (arrow, payload) in enumerate(packets)
        )
        return NegotiationTrace(
            scenario=scenario,
            algorithm=algorithm,
            tips=("HEAD",),
            frames=frames,
            names=names or {},
        )
    return factory
