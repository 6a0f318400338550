"""Tests for GIT_TRACE_PACKET parsing and the trace model."""

import pytest

from negotest.models.trace import Algorithm, FrameDirection, FrameKind, NegotiationTrace
from negotest.packet_trace import classify, parse_packet_trace

from conftest import A, B

SAMPLE = f"""\
12:00:00.000001 pkt-line.c:86           packet:        fetch< version 2
12:00:00.000002 pkt-line.c:86           packet:        fetch< agent=git/2.43.0
12:00:00.000003 pkt-line.c:86           packet:        fetch< 0000
12:00:00.000004 run-command.c:657       trace: run_command: 'git-upload-pack'
12:00:00.000005 pkt-line.c:86           packet:        fetch> command=fetch
12:00:00.000006 pkt-line.c:86           packet:        fetch> 0001
12:00:00.000007 pkt-line.c:86           packet:        fetch> have {A}
12:00:00.000008 pkt-line.c:86           packet:        fetch> have {B}
12:00:00.000009 pkt-line.c:86           packet:        fetch> 0000
12:00:00.000010 pkt-line.c:86           packet:        fetch< acknowledgments
12:00:00.000011 pkt-line.c:86           packet:        fetch< ACK {B}
12:00:00.000012 pkt-line.c:86           packet:        fetch< ready
12:00:00.000013 pkt-line.c:86           packet:        fetch< 0000
"""


class TestParse:

    def test_frames_in_order(self):
        frames = parse_packet_trace(SAMPLE)

        assert [f.index for f in frames] == list(range(12))
        assert frames[0].direction == FrameDirection.SERVER_TO_CLIENT
        assert frames[3].payload == "command=fetch"
        assert frames[3].direction == FrameDirection.CLIENT_TO_SERVER
        assert [f.kind for f in frames[5:7]] == [FrameKind.HAVE, FrameKind.HAVE]
        assert frames[6].object_ids == (B,)

    def test_non_packet_lines_are_ignored(self):
        assert parse_packet_trace("trace: run_command: git\n\n") == []

    def test_timestamps_do_not_matter(self):
        shifted = SAMPLE.replace("12:00:00", "23:59:59")
        assert parse_packet_trace(shifted) == parse_packet_trace(SAMPLE)

    def test_empty_payload(self):
        frames = parse_packet_trace("packet:        fetch>\n")
        assert len(frames) == 1
        assert frames[0].payload == ""
        assert frames[0].kind == FrameKind.CONTROL


@pytest.mark.parametrize("payload,kind", [
    (f"have {A}", FrameKind.HAVE),
    (f"want {A}", FrameKind.WANT),
    ("want-ref refs/heads/main", FrameKind.WANT),
    (f"ACK {A} common", FrameKind.ACK),
    ("NAK", FrameKind.ACK),
    ("ready", FrameKind.ACK),
    ("done", FrameKind.DONE),
    ("command=fetch", FrameKind.CONTROL),
    ("0000", FrameKind.CONTROL),
])
def test_classify(payload, kind):
    assert classify(payload) == kind


class TestTrace:

    def make(self, names=None):
        return NegotiationTrace(
            scenario="clock_skew",
            algorithm=Algorithm.SKIPPING,
            tips=("HEAD", "main"),
            frames=tuple(parse_packet_trace(SAMPLE)),
            names=names or {},
        )

    def test_counts(self):
        trace = self.make()
        assert trace.have_count == 2
        assert trace.round_count == 1

    def test_offered_and_acknowledged_use_labels(self):
        trace = self.make(names={A: "c1"})
        assert trace.offered() == ["c1", B]
        assert trace.acknowledged() == [B]

    def test_artifact_text(self):
        lines = self.make().to_text().splitlines()
        assert lines[0] == "server_to_client\tcontrol\tversion 2"
        assert lines[5] == f"client_to_server\thave\thave {A}"

    def test_from_text_restores_frames(self):
        trace = self.make()
        restored = NegotiationTrace.from_text(
            trace.to_text(), "clock_skew", Algorithm.SKIPPING, tips=("HEAD", "main")
        )
        assert restored == trace
        assert restored.digest == trace.digest

    def test_digest_ignores_names(self):
        assert self.make().digest == self.make(names={A: "c1"}).digest
